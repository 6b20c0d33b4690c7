import logging
from typing import Optional

from .config import SecurityConfig
from .exceptions import InvalidToken
from .models import PasswordToken, User
from .store import Store
from .tokens import TokenCodec
from .utils import utcnow

logger = logging.getLogger(__name__)


class PasswordTokenManager:
    """Short-lived, single-use authorisation to set a new password"""

    def __init__(self, store: Store, codec: TokenCodec, config: SecurityConfig):
        self.store = store
        self.codec = codec
        self.expires = config.PASSWORD_RESET_TOKEN_EXPIRES

    def request_password_reset(self, user: User) -> str:
        """Create reset token. Returns the plaintext token for delivery."""
        token, token_hash = self.codec.generate()

        with self.store.atomic():
            self.store.insert(PasswordToken(
                user_id=user.id,
                hashed_token=token_hash,
                inserted_at=utcnow()
            ))

        logger.info("Password reset requested for user %s", user.id)
        return token

    def get_user_by_password_token(self, token: str) -> Optional[User]:
        """User owning an unexpired token. The token is not consumed."""
        try:
            token_hash = self.codec.hash_encoded(token)
        except InvalidToken:
            return None

        record = self.store.find(
            PasswordToken,
            PasswordToken.hashed_token == token_hash,
            PasswordToken.inserted_at > utcnow() - self.expires
        )
        if not record:
            return None
        return self.store.get(User, id=record[0].user_id)

    def consume_password_token(self, user: User, token: str) -> bool:
        """
        Delete an unexpired token of ``user``. Only the caller whose delete
        removed the row gets True.
        """
        try:
            token_hash = self.codec.hash_encoded(token)
        except InvalidToken:
            return False

        with self.store.atomic():
            removed = self.store.delete(
                PasswordToken,
                PasswordToken.user_id == user.id,
                PasswordToken.hashed_token == token_hash,
                PasswordToken.inserted_at > utcnow() - self.expires
            )
        return removed == 1

    def delete_tokens_by_user(self, user: User) -> int:
        with self.store.atomic():
            return self.store.delete(PasswordToken, PasswordToken.user_id == user.id)
