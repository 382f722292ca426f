"""
Encryption service for PHI/PII fields.

Provides AES-256-GCM encryption for sensitive fields like identifiers,
dates of birth and addresses.

Wire format (the only one exposed):
    base64( nonce[16] || ciphertext || tag[16] )
"""
import base64
import binascii
import hashlib
import hmac
import os
from typing import Iterable, List

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.core.errors import ConfigurationError, IntegrityError
from app.utils import get_logger


log = get_logger(__name__)

NONCE_LENGTH = 16  # 128 bits
TAG_LENGTH = 16  # 128 bits
DEFAULT_AAD = b"aorta-mesh-phi"
MAX_OLD_KEYS = 5


def derive_key(secret: str) -> bytes:
    """Derive a 256-bit key from a configured secret."""
    if not secret:
        raise ConfigurationError(
            "ENCRYPTION_KEY must be set. "
            "Generate with: python -c \"import secrets; print(secrets.token_hex(32))\""
        )
    return hashlib.sha256(secret.encode("utf-8")).digest()


class FieldEncryptionService:
    """
    Service for encrypting and decrypting sensitive data.

    Supports key rotation by keeping previous secrets:
    - Current key: used for all new encryptions
    - Old keys: used for decryption only

    The keys are derived once at construction.
    """

    def __init__(
        self,
        secret: str,
        old_secrets: Iterable[str] = (),
        hash_salt: str = "aorta-mesh-salt",
        aad: bytes = DEFAULT_AAD,
    ):
        self._cipher = AESGCM(derive_key(secret))
        old = list(old_secrets)
        if len(old) > MAX_OLD_KEYS:
            log.warning(f"{len(old)} old encryption keys configured, keeping the newest {MAX_OLD_KEYS}")
            old = old[-MAX_OLD_KEYS:]
        self._old_ciphers: List[AESGCM] = [AESGCM(derive_key(s)) for s in old]
        self._hash_key = hash_salt.encode("utf-8")
        self._aad = aad

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string with a fresh random nonce.

        Returns:
            str: base64 blob carrying nonce, ciphertext and tag together
        """
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._cipher.encrypt(nonce, plaintext.encode("utf-8"), self._aad)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """
        Decrypt a blob produced by encrypt().

        Tries the current key first, then each old key.

        Raises:
            IntegrityError: if the blob is malformed or no key authenticates it
        """
        try:
            combined = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise IntegrityError(f"Malformed ciphertext: {e}") from e

        if len(combined) < NONCE_LENGTH + TAG_LENGTH:
            raise IntegrityError("Malformed ciphertext: too short")

        nonce, sealed = combined[:NONCE_LENGTH], combined[NONCE_LENGTH:]
        for cipher in [self._cipher, *self._old_ciphers]:
            try:
                plaintext = cipher.decrypt(nonce, sealed, self._aad)
            except InvalidTag:
                continue
            try:
                return plaintext.decode("utf-8")
            except UnicodeDecodeError as e:
                raise IntegrityError("Decrypted data is not valid UTF-8") from e

        log.error("Decryption failed: authentication tag did not verify")
        raise IntegrityError("Failed to decrypt sensitive data")

    def rotate(self, blob: str) -> str:
        """Re-encrypt a blob under the current key."""
        return self.encrypt(self.decrypt(blob))

    def hash_for_index(self, value: str) -> str:
        """Keyed one-way hash for equality lookups on encrypted columns."""
        return hmac.new(self._hash_key, value.encode("utf-8"), hashlib.sha256).hexdigest()


def generate_secure_token(length: int = 32) -> str:
    """Generate a secure random token (hex)."""
    return os.urandom(length).hex()
