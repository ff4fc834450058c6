"""
Encryption for GitHub personal access tokens at rest.

Uses AES-256-GCM for authenticated encryption. The key is the SHA-256
digest of a server-side secret. Ciphertexts are stored as
base64(nonce[12] + ciphertext + tag[16]), the same layout WebCrypto
produces, so tokens written by the edge function decrypt here too.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import CredentialError

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_ENV = "PAT_ENCRYPTION_KEY"
NONCE_SIZE = 12  # GCM recommended nonce size


class CredentialCipher:
    """Encrypts and decrypts tokens with a key derived from a secret."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise CredentialError(f"{ENCRYPTION_KEY_ENV} not configured")
        key = hashlib.sha256(secret.encode("utf-8")).digest()
        self._aead = AESGCM(key)

    @classmethod
    def from_env(cls, var: str = ENCRYPTION_KEY_ENV) -> CredentialCipher:
        """Create a cipher from the secret in environment variable ``var``."""
        secret = os.environ.get(var)
        if not secret:
            raise CredentialError(f"{var} not configured")
        return cls(secret)

    def encrypt(self, token: str) -> str:
        """Encrypt ``token`` and return the base64 envelope."""
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, token.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, envelope: str) -> str:
        """Decrypt a base64 envelope produced by ``encrypt``.

        Raises:
            CredentialError: If the envelope is malformed, tampered with,
                or was encrypted under a different key
        """
        try:
            combined = base64.b64decode(envelope, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CredentialError("Stored credential is not valid base64") from e

        if len(combined) <= NONCE_SIZE:
            raise CredentialError("Stored credential is truncated")

        nonce, ciphertext = combined[:NONCE_SIZE], combined[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, ciphertext, None).decode("utf-8")
        except InvalidTag as e:
            logger.error("Failed to decrypt stored credential: authentication tag mismatch")
            raise CredentialError("Stored credential could not be decrypted") from e
