"""Domain models."""

from .authorization import NEVER, AuthorizationInfo, AuthorizationToken
from .credentials import AuthenticationToken, AuthorizationGrant
from .data import DataPoint, DataReadResult, Schema, ShimDataPage

__all__ = [
    "NEVER",
    "AuthenticationToken",
    "AuthorizationGrant",
    "AuthorizationInfo",
    "AuthorizationToken",
    "DataPoint",
    "DataReadResult",
    "Schema",
    "ShimDataPage",
]
