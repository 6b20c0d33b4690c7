import base64
import binascii
import hashlib
import re
import secrets
from typing import Tuple

from .exceptions import InvalidToken

_URLSAFE = re.compile(r'[A-Za-z0-9_-]+')


class TokenCodec:
    """
    Opaque tokens for sessions, email confirmation and password reset.

    The raw bytes travel to the user as unpadded URL-safe base64. Only the
    SHA-256 digest of the raw bytes is ever written to the store, so a copy
    of the database holds no usable token.
    """

    MIN_BYTES = 24

    def __init__(self, length_bytes: int = 32):
        if length_bytes < self.MIN_BYTES:
            raise ValueError(f"Tokens need at least {self.MIN_BYTES} bytes of entropy")
        self.length_bytes = length_bytes

    def generate(self) -> Tuple[str, bytes]:
        """Returns (encoded_raw_token, stored_hash)"""
        raw = secrets.token_bytes(self.length_bytes)
        return self.encode(raw), self.hash(raw)

    @staticmethod
    def encode(raw: bytes) -> str:
        return base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii')

    @staticmethod
    def decode(token: str) -> bytes:
        """
        Reverse of :meth:`encode`.

        Raises:
            InvalidToken: if the input is not unpadded URL-safe base64
        """
        if not isinstance(token, str) or not _URLSAFE.fullmatch(token):
            raise InvalidToken()
        try:
            return base64.urlsafe_b64decode(token + '=' * (-len(token) % 4))
        except (binascii.Error, ValueError):
            raise InvalidToken()

    @staticmethod
    def hash(raw: bytes) -> bytes:
        """SHA-256 digest stored in place of the token"""
        return hashlib.sha256(raw).digest()

    def hash_encoded(self, token: str) -> bytes:
        return self.hash(self.decode(token))
