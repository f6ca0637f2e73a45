"""Service layer exports."""

from .credentials import SignedCredentialCodec
from .token_cipher import TokenCipherService

__all__ = ["SignedCredentialCodec", "TokenCipherService"]
