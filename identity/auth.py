"""
Authentication Module
Orchestrating API over credentials, emails, sessions, reset tokens and 2FA.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session as DBSession

from .config import SecurityConfig
from .crypto import PasswordHasher, SecretBox
from .emails import EmailManager
from .exceptions import NotFound
from .login import LoginManager, PasswordChange
from .mfa import PendingTwoFactor, TwoFactorEngine
from .models import BasicLogin, Email, Session, User
from .notifier import LoggingNotifier, Notifier
from .password_reset import PasswordTokenManager
from .session import SessionManager
from .store import Store
from .tokens import TokenCodec
from .utils import Validator

logger = logging.getLogger(__name__)


class Identity:
    """
    Credential and session management with security controls.

    One instance per database session, e.g. one per request::

        identity = Identity(db, get_config(), notifier=MailNotifier())
        user = identity.get_user_by_email_and_password(email, password)
    """

    def __init__(
        self,
        db_session: DBSession,
        config: SecurityConfig,
        notifier: Optional[Notifier] = None,
        hasher: Optional[PasswordHasher] = None
    ):
        self.config = config
        self.store = Store(db_session)
        self.notifier = notifier or LoggingNotifier()

        # Building an Argon2 hasher hashes a dummy password; share one across requests
        self.hasher = hasher or PasswordHasher(config)
        codec = TokenCodec(config.TOKEN_BYTES)
        validator = Validator(config)

        self.sessions = SessionManager(self.store, codec, config)
        self.password_tokens = PasswordTokenManager(self.store, codec, config)
        self.emails = EmailManager(self.store, codec, validator)
        self.logins = LoginManager(
            self.store, self.hasher, validator, self.emails, self.sessions, self.password_tokens
        )
        self.mfa = TwoFactorEngine(self.store, SecretBox(config.ENCRYPTION_KEY), config)

    # ==================== USERS ====================

    def get_user(self, user_id: str) -> Optional[User]:
        return self.store.get(User, id=user_id)

    def get_user_or_raise(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def create_user(self) -> User:
        with self.store.atomic():
            return self.store.insert(User())

    # ==================== LOGINS ====================

    def get_user_by_email_and_password(self, email: str, password: str) -> Optional[User]:
        return self.logins.get_user_by_email_and_password(email, password)

    def register_login(
        self,
        email: str,
        password: str,
        user: Optional[User] = None,
        password_confirmation: Optional[str] = None
    ) -> Tuple[Email, BasicLogin]:
        """Register email + password; the confirmation token goes to the notifier"""
        email_record, login, token = self.logins.register(email, password, user, password_confirmation)
        self._deliver_confirmation(email_record.email, token)
        return email_record, login

    def request_password_change(
        self,
        user: User,
        password: Optional[str] = None,
        password_confirmation: Optional[str] = None
    ) -> PasswordChange:
        return self.logins.request_password_change(user, password, password_confirmation)

    def change_password(
        self,
        user: User,
        current_password: str,
        password: str,
        password_confirmation: Optional[str] = None
    ) -> None:
        self.logins.change_password(user, current_password, password, password_confirmation)

    # ==================== TWO-FACTOR ====================

    def request_enable_2fa(self, user: User) -> PendingTwoFactor:
        return self.mfa.request_enable(user)

    def enable_2fa(self, pending: PendingTwoFactor, otp_code: str) -> List[str]:
        return self.mfa.enable(pending, otp_code)

    def enabled_2fa(self, user: User) -> bool:
        return self.mfa.enabled(user)

    def valid_2fa(self, user: User, code: str) -> bool:
        return self.mfa.verify(user, code)

    def regenerate_2fa_backup_codes(self, user: User) -> List[str]:
        return self.mfa.regenerate_backup_codes(user)

    def disable_2fa(self, user: User) -> None:
        self.mfa.disable(user)

    # ==================== EMAILS ====================

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.emails.get_user_by_email(email)

    def list_emails(self, user: User) -> List[Email]:
        return self.emails.list_emails(user)

    def register_email(self, user: User, email: str) -> None:
        token = self.emails.register_email(user, email)
        self._deliver_confirmation(email, token)

    def regenerate_email_token(self, user: User, email: str) -> None:
        token = self.emails.regenerate_email_token(user, email)
        self._deliver_confirmation(email, token)

    def confirm_email(self, token: str) -> Email:
        return self.emails.confirm_email(token)

    def remove_email(self, user: User, email: str) -> None:
        self.emails.remove_email(user, email)

    # ==================== PASSWORD RESET ====================

    def request_password_reset(self, user: User) -> None:
        token = self.password_tokens.request_password_reset(user)
        self._deliver_password_reset(user, token)

    def request_password_reset_by_email(self, email: str) -> None:
        """Unknown addresses are silently ignored to prevent email enumeration"""
        user = self.get_user_by_email(email)
        if user:
            self.request_password_reset(user)

    def get_user_by_password_token(self, token: str) -> Optional[User]:
        return self.password_tokens.get_user_by_password_token(token)

    def reset_password(
        self,
        user: User,
        password: str,
        password_confirmation: Optional[str] = None
    ) -> User:
        """Revokes every session and reset token of the user"""
        return self.logins.reset_password(user, password, password_confirmation)

    def reset_password_by_token(
        self,
        token: str,
        password: str,
        password_confirmation: Optional[str] = None
    ) -> User:
        """
        Raises:
            NotFound: token unknown, malformed or expired
            ValidationError: new password rejected
        """
        user = self.get_user_by_password_token(token)
        if not user:
            raise NotFound("Invalid or expired reset token")
        return self.logins.reset_password(user, password, password_confirmation, reset_token=token)

    # ==================== SESSIONS ====================

    def create_session(self, user: User, client: str) -> Tuple[str, Session]:
        return self.sessions.create_session(user, client)

    def get_user_by_session(self, token: str) -> Optional[User]:
        return self.sessions.get_user_by_session(token)

    def list_sessions(self, user: User) -> List[Session]:
        return self.sessions.list_sessions(user)

    def delete_session(self, token: str) -> None:
        self.sessions.delete_session(token)

    def delete_sessions_by_user(self, user: User) -> None:
        self.sessions.delete_sessions_by_user(user)

    # ==================== NOTIFICATIONS ====================

    def _deliver_confirmation(self, email: str, token: str) -> None:
        try:
            self.notifier.deliver_confirmation(email, token)
        except Exception:
            # Delivery is best-effort; the token stays valid for a resend
            logger.exception("Confirmation delivery failed for %s", email)

    def _deliver_password_reset(self, user: User, token: str) -> None:
        try:
            self.notifier.deliver_password_reset(user, token)
        except Exception:
            logger.exception("Password reset delivery failed for user %s", user.id)
