import logging
from typing import List, Optional, Tuple

from sqlalchemy import exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from .exceptions import NotFound, OnlyEmail, ValidationError
from .models import Email, User
from .store import Store
from .tokens import TokenCodec
from .utils import Validator, normalize_email, utcnow

logger = logging.getLogger(__name__)

TAKEN = "has already been taken"


class EmailManager:
    """Contact addresses, their confirmation tokens and confirmation state"""

    def __init__(self, store: Store, codec: TokenCodec, validator: Validator):
        self.store = store
        self.codec = codec
        self.validator = validator

    def get_user_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        record = self.store.get(Email, email_key=normalize_email(email))
        if not record:
            return None
        return self.store.get(User, id=record.user_id)

    def list_emails(self, user: User) -> List[Email]:
        return self.store.find(Email, Email.user_id == user.id, order_by=Email.created_at)

    def email_errors(self, email: Optional[str]) -> List[str]:
        """Format, length and (case-insensitive) uniqueness"""
        errors = self.validator.email_errors(email)
        if not errors and self.store.get(Email, email_key=normalize_email(email)):
            errors.append(TAKEN)
        return errors

    def register_email(self, user: User, email: str) -> str:
        """
        Add an unconfirmed address to ``user``.
        Returns the plaintext confirmation token for delivery.

        Raises:
            ValidationError: on format, length or uniqueness failures
        """
        errors = self.email_errors(email)
        if errors:
            raise ValidationError({'email': errors})

        with self.store.atomic():
            _, token = self.insert_email(user, email)
        return token

    def insert_email(self, user: User, email: str) -> Tuple[Email, str]:
        """Insert without pre-validation. The unique key still guards races."""
        token, token_hash = self.codec.generate()
        record = Email(
            user_id=user.id,
            email=email.strip(),
            email_key=normalize_email(email),
            hashed_token=token_hash,
            generated_at=utcnow()
        )
        try:
            self.store.insert(record)
        except IntegrityError:
            raise ValidationError({'email': [TAKEN]})
        return record, token

    def confirm_email(self, token: str) -> Email:
        """
        Confirm the address owning ``token`` and burn the token.

        Raises:
            InvalidToken: token cannot be decoded
            NotFound: no pending confirmation matches
        """
        token_hash = self.codec.hash_encoded(token)

        with self.store.atomic():
            email_id = self.store.update_returning(
                Email,
                {'hashed_token': None, 'confirmed_at': utcnow()},
                Email.id,
                Email.hashed_token == token_hash
            )
            if email_id is None:
                raise NotFound("Email confirmation token not found")
            record = self.store.get(Email, id=email_id)

        logger.info("Email confirmed for user %s", record.user_id)
        return record

    def regenerate_email_token(self, user: User, email: str) -> str:
        """New confirmation token for one of the user's unconfirmed addresses"""
        token, token_hash = self.codec.generate()

        with self.store.atomic():
            changed = self.store.update(
                Email,
                {'hashed_token': token_hash, 'generated_at': utcnow()},
                Email.user_id == user.id,
                Email.email_key == normalize_email(email),
                Email.confirmed_at.is_(None)
            )
            if not changed:
                raise NotFound("Unconfirmed email not found")
        return token

    def remove_email(self, user: User, email: str) -> None:
        """
        Delete one of the user's addresses.

        Raises:
            NotFound: the address does not belong to ``user``
            OnlyEmail: it is the only email, or the only confirmed one
        """
        record = self.store.get(Email, user_id=user.id, email_key=normalize_email(email or ''))
        if not record:
            raise NotFound("Email not found")

        other = aliased(Email)
        guard = exists().where(other.user_id == user.id, other.id != record.id)
        if record.is_confirmed:
            guard = guard.where(other.confirmed_at.is_not(None))

        with self.store.atomic():
            # Serialise removals for this user before the guarded DELETE
            self.store.lock(Email, Email.user_id == user.id)
            removed = self.store.delete(Email, Email.id == record.id, guard)
            if not removed:
                raise OnlyEmail()

        logger.info("Email removed for user %s", user.id)
