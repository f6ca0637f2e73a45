"""Symmetric encryption for provider secrets held in the token and info bins."""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken


class TokenCipherService:
    """Encrypt and decrypt provider secrets using a derived Fernet key."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError(
                "Failed to decrypt stored secret; invalid ciphertext provided."
            ) from exc
        return plaintext.decode("utf-8")

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        if plaintext is None:
            return None
        return self.encrypt(plaintext)

    def decrypt_optional(self, ciphertext: Optional[str]) -> Optional[str]:
        if ciphertext is None:
            return None
        return self.decrypt(ciphertext)

    def encrypt_mapping(self, payload: Dict[str, Any]) -> str:
        """Seal an opaque provider payload such as pre-auth state."""
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        return self.encrypt(serialized)

    def decrypt_mapping(self, ciphertext: str) -> Dict[str, Any]:
        return json.loads(self.decrypt(ciphertext))


__all__ = ["TokenCipherService"]
