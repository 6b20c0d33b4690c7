import base64
import os
import secrets

from argon2 import PasswordHasher as Argon2Hasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import SecurityConfig


class PasswordHasher:
    """
    Argon2id password hashing (resistant to GPU cracking and side-channel attacks).

    Verification time is dominated by the KDF, not by string comparison.
    ``verify_no_user`` burns the same work against a dummy hash so that an
    unknown email costs as much as a wrong password.
    """

    def __init__(self, config: SecurityConfig):
        self._hasher = Argon2Hasher(
            time_cost=config.ARGON2_TIME_COST,
            memory_cost=config.ARGON2_MEMORY_COST,
            parallelism=config.ARGON2_PARALLELISM,
            hash_len=config.ARGON2_HASH_LENGTH,
            salt_len=config.ARGON2_SALT_LENGTH,
            type=Type.ID
        )
        self._dummy_hash = self._hasher.hash(secrets.token_urlsafe(16))

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return self._hasher.verify(hashed, password)
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError):
            # Corrupt or foreign hash format
            return False

    def verify_no_user(self, password: str) -> bool:
        """Hash-and-compare against a dummy hash. Always False."""
        self.verify(password, self._dummy_hash)
        return False

    def needs_rehash(self, hashed: str) -> bool:
        return self._hasher.check_needs_rehash(hashed)


class SecretBox:
    """
    Handles symmetrical encryption of TOTP shared secrets using AES-256-GCM.
    """

    NONCE_SIZE = 12  # NIST recommended IV length for GCM

    def __init__(self, encoded_key: str):
        try:
            self.key = base64.urlsafe_b64decode(encoded_key)
            if len(self.key) != 32:
                raise ValueError("Key must be 32 bytes (256 bits) for AES-256")
        except Exception as e:
            raise ValueError(f"Invalid Encryption Key configuration: {e}")
        self._aead = AESGCM(self.key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypts data using AES-GCM.
        IV is generated randomly for every operation.
        Returns: iv_hex:ciphertext_and_tag_hex
        """
        iv = os.urandom(self.NONCE_SIZE)
        ciphertext = self._aead.encrypt(iv, plaintext.encode(), None)
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, payload: str) -> str:
        """
        Decrypts AES-GCM payload.
        Verifies authentication tag to prevent tampering.
        """
        try:
            iv_hex, ct_hex = payload.split(':')
            return self._aead.decrypt(bytes.fromhex(iv_hex), bytes.fromhex(ct_hex), None).decode()
        except (InvalidTag, ValueError):
            raise ValueError("Decryption failed or data tampered")
