import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .config import SecurityConfig

_EMAIL_FORMAT = re.compile(r'[^\s]+@[^\s]+')
_OTP_FORMAT = re.compile(r'[0-9]{6}')


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_email(email: str) -> str:
    """Uniqueness key for an address; the display form keeps its casing"""
    return email.strip().lower()


class Validator:
    """Field validation. Each method returns error messages for one field."""

    def __init__(self, config: SecurityConfig):
        self.config = config

    def email_errors(self, email: Optional[str]) -> List[str]:
        if not email:
            return ["can't be blank"]
        errors = []
        if not _EMAIL_FORMAT.fullmatch(email):
            errors.append("must have the @ sign and no spaces")
        if len(email) > self.config.EMAIL_MAX_LENGTH:
            errors.append(f"should be at most {self.config.EMAIL_MAX_LENGTH} character(s)")
        return errors

    def password_errors(self, password: Optional[str]) -> List[str]:
        if not password:
            return ["can't be blank"]
        errors = []
        if len(password) < self.config.PASSWORD_MIN_LENGTH:
            errors.append(f"should be at least {self.config.PASSWORD_MIN_LENGTH} character(s)")
        if len(password) > self.config.PASSWORD_MAX_LENGTH:
            errors.append(f"should be at most {self.config.PASSWORD_MAX_LENGTH} character(s)")
        return errors

    def new_password_errors(
        self,
        password: Optional[str],
        confirmation: Optional[str] = None
    ) -> Dict[str, List[str]]:
        """Password plus optional confirmation, keyed by field"""
        errors = {}
        password_errors = self.password_errors(password)
        if password_errors:
            errors['password'] = password_errors
        if confirmation is not None and confirmation != password:
            errors['password_confirmation'] = ["does not match password"]
        return errors

    @staticmethod
    def otp_code_errors(code: Optional[str]) -> List[str]:
        if not code:
            return ["can't be blank"]
        if not _OTP_FORMAT.fullmatch(code):
            return ["should be a 6 digit number"]
        return []
