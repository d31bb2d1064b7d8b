"""Credential encryption with AES-256-GCM.

Saved connection credentials never touch disk or cache in plain text.
"""

import base64
import binascii
import hashlib
import json
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import DecryptionError, MissingConfig

NONCE_SIZE = 12  # 96-bit nonce for GCM


class CredentialCipher:
    """Encrypt and decrypt JSON-serializable credentials.

    The key is the SHA-256 digest of a configured secret. Tokens are
    base64(nonce || ciphertext || tag), so the same plaintext encrypts to a
    different token every time.
    """

    def __init__(self, secret: str):
        """Initialize cipher.

        Args:
            secret: Encryption secret (any length)

        Raises:
            MissingConfig: If the secret is empty
        """
        if not secret:
            raise MissingConfig(
                "Encryption secret is not set\n"
                "  Hint: export DBCOPILOT_ENCRYPTION_SECRET or pass --encryption-secret"
            )
        self._aesgcm = AESGCM(hashlib.sha256(secret.encode("utf-8")).digest())

    def encrypt(self, data: Any) -> str:
        """Encrypt ``data`` into a base64 token.

        Args:
            data: JSON-serializable value

        Returns:
            Base64 token
        """
        plaintext = json.dumps(data).encode("utf-8")
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext, None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, token: str) -> Any:
        """Decrypt a token produced by ``encrypt``.

        Args:
            token: Base64 token

        Returns:
            The original value

        Raises:
            DecryptionError: If the token is malformed, was tampered with, or
                was encrypted under a different secret
        """
        try:
            raw = base64.b64decode(token, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise DecryptionError("Failed to decrypt credential: invalid encoding") from e

        if len(raw) <= NONCE_SIZE:
            raise DecryptionError("Failed to decrypt credential: token too short")

        nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise DecryptionError(
                "Failed to decrypt credential.\n"
                "  Hint: The encryption secret changed or the saved record is corrupted"
            ) from e

        return json.loads(plaintext.decode("utf-8"))
