"""
Credential Module

Password registration, verification, change and reset for a user's
BasicLogin. Password changes of either kind revoke every session and every
password reset token of the user in the same transaction.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .crypto import PasswordHasher
from .emails import EmailManager
from .exceptions import InvalidCurrentPassword, NotFound, ValidationError
from .models import BasicLogin, Email, User
from .password_reset import PasswordTokenManager
from .session import SessionManager
from .store import Store
from .utils import Validator, normalize_email

logger = logging.getLogger(__name__)


@dataclass
class PasswordChange:
    """Pending password change. Validation only, nothing is persisted."""

    user_id: str
    password: Optional[str] = None
    password_confirmation: Optional[str] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)
    required: List[str] = field(default_factory=lambda: ['password'])

    @property
    def valid(self) -> bool:
        return not self.errors


class LoginManager:
    def __init__(
        self,
        store: Store,
        hasher: PasswordHasher,
        validator: Validator,
        emails: EmailManager,
        sessions: SessionManager,
        password_tokens: PasswordTokenManager
    ):
        self.store = store
        self.hasher = hasher
        self.validator = validator
        self.emails = emails
        self.sessions = sessions
        self.password_tokens = password_tokens

    def get_login(self, user: User) -> Optional[BasicLogin]:
        return self.store.get(BasicLogin, user_id=user.id)

    def register(
        self,
        email: str,
        password: str,
        user: Optional[User] = None,
        password_confirmation: Optional[str] = None
    ) -> Tuple[Email, BasicLogin, str]:
        """
        Register an email and password, creating the user when none is given.

        Returns:
            (email_record, login, confirmation_token_plaintext)

        Raises:
            ValidationError: with field-level messages
        """
        errors = {}
        email_errors = self.emails.email_errors(email)
        if email_errors:
            errors['email'] = email_errors
        errors.update(self.validator.new_password_errors(password, password_confirmation))
        if user is not None and self.get_login(user):
            errors['user'] = ["already has a login"]
        if errors:
            raise ValidationError(errors)

        # Slow KDF stays outside the transaction
        hashed_password = self.hasher.hash(password)

        with self.store.atomic():
            if user is None:
                user = self.store.insert(User())
            email_record, token = self.emails.insert_email(user, email)
            login = self.store.insert(BasicLogin(user_id=user.id, hashed_password=hashed_password))

        logger.info("Registered login for user %s", user.id)
        return email_record, login, token

    def get_user_by_email_and_password(self, email: str, password: str) -> Optional[User]:
        """
        Look up by (case-insensitive) email and check the password.
        Unknown emails cost the same hashing work as wrong passwords.
        """
        record = self.store.get(Email, email_key=normalize_email(email or ''))
        login = record and self.store.get(BasicLogin, user_id=record.user_id)

        if not login:
            self.hasher.verify_no_user(password or '')
            return None

        if not self.hasher.verify(password or '', login.hashed_password):
            return None

        if self.hasher.needs_rehash(login.hashed_password):
            # Parameters were raised since this hash was made
            with self.store.atomic():
                self.store.update(
                    BasicLogin,
                    {'hashed_password': self.hasher.hash(password)},
                    BasicLogin.id == login.id,
                    BasicLogin.hashed_password == login.hashed_password
                )

        return self.store.get(User, id=login.user_id)

    def request_password_change(
        self,
        user: User,
        password: Optional[str] = None,
        password_confirmation: Optional[str] = None
    ) -> PasswordChange:
        change = PasswordChange(user.id, password, password_confirmation)
        if password is not None:
            change.errors = self.validator.new_password_errors(password, password_confirmation)
        return change

    def change_password(
        self,
        user: User,
        current_password: str,
        password: str,
        password_confirmation: Optional[str] = None
    ) -> None:
        """
        Raises:
            ValidationError: new password rejected
            InvalidCurrentPassword: ``current_password`` does not verify
        """
        errors = self.validator.new_password_errors(password, password_confirmation)
        if errors:
            raise ValidationError(errors)

        login = self.get_login(user)
        if not login:
            self.hasher.verify_no_user(current_password or '')
            raise InvalidCurrentPassword()
        if not self.hasher.verify(current_password or '', login.hashed_password):
            raise InvalidCurrentPassword()

        # Compare-and-swap on the old hash: a concurrent change wins, this one fails
        if not self._replace_password(user, login, password, expected_hash=login.hashed_password):
            raise InvalidCurrentPassword()
        logger.info("Password changed for user %s", user.id)

    def reset_password(
        self,
        user: User,
        password: str,
        password_confirmation: Optional[str] = None,
        reset_token: Optional[str] = None
    ) -> User:
        """
        Set a new password without the current one. The caller has already
        proven control, e.g. through a password reset token.

        When ``reset_token`` is given it is consumed in the same transaction
        as the password write, and a token someone else already used raises
        ``NotFound`` with nothing changed.
        """
        errors = self.validator.new_password_errors(password, password_confirmation)
        if errors:
            raise ValidationError(errors)

        login = self.get_login(user)
        if not login:
            raise NotFound("Login not found")

        self._replace_password(user, login, password, reset_token=reset_token)
        logger.info("Password reset for user %s", user.id)
        return user

    def _replace_password(
        self,
        user: User,
        login: BasicLogin,
        password: str,
        expected_hash: Optional[str] = None,
        reset_token: Optional[str] = None
    ) -> bool:
        hashed_password = self.hasher.hash(password)
        criteria = [BasicLogin.id == login.id]
        if expected_hash is not None:
            criteria.append(BasicLogin.hashed_password == expected_hash)

        with self.store.atomic():
            if reset_token is not None and not self.password_tokens.consume_password_token(user, reset_token):
                raise NotFound("Invalid or expired reset token")
            if not self.store.update(BasicLogin, {'hashed_password': hashed_password}, *criteria):
                return False
            self.sessions.delete_sessions_by_user(user)
            self.password_tokens.delete_tokens_by_user(user)
        return True
