import logging
from typing import List, Optional, Tuple

from .config import SecurityConfig
from .exceptions import InvalidToken
from .models import Session, User
from .store import Store
from .tokens import TokenCodec
from .utils import utcnow

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(self, store: Store, codec: TokenCodec, config: SecurityConfig):
        self.store = store
        self.codec = codec
        self.ttl = config.SESSION_TTL

    def create_session(self, user: User, client: str) -> Tuple[str, Session]:
        """
        Creates a new session bound to ``user`` and a client label.
        Returns (session_token_plaintext, session). Only the hash is stored.
        """
        token, token_hash = self.codec.generate()
        now = utcnow()

        with self.store.atomic():
            session = self.store.insert(Session(
                user_id=user.id,
                client=client,
                token_hash=token_hash,
                inserted_at=now,
                last_active_at=now
            ))

        return token, session

    def get_user_by_session(self, session_token: str) -> Optional[User]:
        """
        Returns the session's user, or None for unknown or expired tokens.

        Expiry counts from creation. The lookup and the last-active refresh
        are a single conditional update.
        """
        try:
            token_hash = self.codec.hash_encoded(session_token)
        except InvalidToken:
            return None

        now = utcnow()
        with self.store.atomic():
            user_id = self.store.update_returning(
                Session,
                {'last_active_at': now},
                Session.user_id,
                Session.token_hash == token_hash,
                Session.inserted_at > now - self.ttl
            )
            if user_id is None:
                return None
            return self.store.get(User, id=user_id)

    def delete_session(self, session_token: str) -> None:
        """Log out. Unknown or malformed tokens are ignored."""
        try:
            token_hash = self.codec.hash_encoded(session_token)
        except InvalidToken:
            return

        with self.store.atomic():
            self.store.delete(Session, Session.token_hash == token_hash)

    def delete_sessions_by_user(self, user: User) -> int:
        """Panic Button / Password Reset / Security Breach"""
        user_id = user.id
        with self.store.atomic():
            count = self.store.delete(Session, Session.user_id == user.id)
            if count:
                self.store.on_commit(
                    lambda: logger.info("Revoked %d session(s) for user %s", count, user_id)
                )
        return count

    def list_sessions(self, user: User) -> List[Session]:
        return self.store.find(Session, Session.user_id == user.id, order_by=Session.inserted_at)
