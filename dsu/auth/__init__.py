"""Authorization engines, one per provider protocol family."""

from .direct import DirectAuthorizationEngine
from .oauth1 import OAuth1Endpoints, OAuth1Engine
from .oauth2 import OAuth2Endpoints, OAuth2Engine

__all__ = [
    "DirectAuthorizationEngine",
    "OAuth1Endpoints",
    "OAuth1Engine",
    "OAuth2Endpoints",
    "OAuth2Engine",
]
