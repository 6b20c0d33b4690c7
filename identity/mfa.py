"""
Multi-Factor Authentication (MFA) Module

Implements TOTP-based 2FA (RFC 6238) on top of a user's BasicLogin:
- Enrollment against a pending, not yet persisted secret
- TOTP validation (6-digit codes, 30-second steps, +/- 1 step drift)
- Replay protection: a time step is accepted at most once
- Single-use backup codes, consumed by a conditional delete
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import pyotp
from pyotp.utils import strings_equal
from sqlalchemy import or_

from .config import SecurityConfig
from .crypto import SecretBox
from .exceptions import InvalidCode, NotFound, ValidationError
from .models import BackupCode, BasicLogin, User
from .store import Store
from .tokens import TokenCodec
from .utils import Validator, utcnow

logger = logging.getLogger(__name__)


@dataclass
class PendingTwoFactor:
    """
    Secret awaiting confirmation by a first valid code.
    Nothing is stored until :meth:`TwoFactorEngine.enable` succeeds.
    """

    user_id: str
    otp_secret: str
    issuer: str
    interval: int = 30
    digits: int = 6

    def provisioning_uri(self, account_name: str) -> str:
        """
        otpauth:// URI for authenticator apps.
        Format: otpauth://totp/Issuer:account?secret=SECRET&issuer=Issuer
        """
        totp = pyotp.TOTP(self.otp_secret, digits=self.digits, interval=self.interval)
        return totp.provisioning_uri(name=account_name, issuer_name=self.issuer)


class TwoFactorEngine:
    """
    Manages TOTP-based two-factor authentication.

    Compatible with: Google Authenticator, Authy, Microsoft Authenticator, etc.
    """

    BACKUP_CODE_ALPHABET = string.ascii_uppercase

    def __init__(self, store: Store, box: SecretBox, config: SecurityConfig):
        self.store = store
        self.box = box
        self.issuer = config.TOTP_ISSUER
        self.interval = config.TOTP_INTERVAL
        self.digits = config.TOTP_DIGITS
        self.valid_window = config.TOTP_VALID_WINDOW
        self.backup_code_count = config.MFA_BACKUP_CODE_COUNT
        self.backup_code_length = config.MFA_BACKUP_CODE_LENGTH
        self.clock = time.time

    # ==================== ENROLLMENT ====================

    def request_enable(self, user: User) -> PendingTwoFactor:
        """Fresh base32 secret for display as QR code / URI"""
        return PendingTwoFactor(
            user_id=user.id,
            otp_secret=pyotp.random_base32(),
            issuer=self.issuer,
            interval=self.interval,
            digits=self.digits
        )

    def enable(self, pending: PendingTwoFactor, otp_code: str) -> List[str]:
        """
        Confirm the pending secret with a code from the authenticator.

        Returns:
            The raw backup codes. They are only ever returned here.

        Raises:
            ValidationError: code blank or not six digits
            InvalidCode: code does not match the pending secret
            NotFound: user has no login
        """
        errors = Validator.otp_code_errors(otp_code)
        if errors:
            raise ValidationError({'otp_code': errors})

        if self._match_step(pending.otp_secret, otp_code) is None:
            raise InvalidCode()

        login = self.store.get(BasicLogin, user_id=pending.user_id)
        if not login:
            raise NotFound("Login not found")

        codes = self.generate_backup_codes()
        with self.store.atomic():
            self.store.update(
                BasicLogin,
                {'otp_secret': self.box.encrypt(pending.otp_secret), 'last_used_otp_at': None},
                BasicLogin.id == login.id
            )
            self._store_backup_codes(login, codes)

        logger.info("Two-factor authentication enabled for user %s", pending.user_id)
        return codes

    def enabled(self, user: User) -> bool:
        login = self.store.get(BasicLogin, user_id=user.id)
        return bool(login and login.otp_enabled)

    # ==================== VERIFICATION ====================

    def verify(self, user: User, code: str) -> bool:
        """
        Accept a TOTP code for a not yet used time step, or consume a backup code.
        Returns False without changes when neither matches.
        """
        login = self.store.get(BasicLogin, user_id=user.id)
        if not login or not login.otp_enabled or not code:
            return False
        code = code.strip()

        step = self._match_step(self.box.decrypt(login.otp_secret), code)
        if step is not None:
            if self._mark_step_used(login, step):
                return True
            logger.warning("Rejected reused TOTP code for user %s", user.id)

        return self._consume_backup_code(login, code)

    def _match_step(self, secret: str, code: str) -> Optional[int]:
        """Time step whose code equals ``code``, within the drift window"""
        if not code or len(code) != self.digits or not code.isdigit():
            return None

        totp = pyotp.TOTP(secret, digits=self.digits, interval=self.interval)
        counter = int(self.clock()) // self.interval

        for step in range(counter - self.valid_window, counter + self.valid_window + 1):
            if strings_equal(totp.generate_otp(step), code):
                return step
        return None

    def _mark_step_used(self, login: BasicLogin, step: int) -> bool:
        """Record ``step`` only if it is newer than the last accepted one"""
        step_at = datetime.fromtimestamp(step * self.interval, timezone.utc).replace(tzinfo=None)

        with self.store.atomic():
            return self.store.update(
                BasicLogin,
                {'last_used_otp_at': step_at},
                BasicLogin.id == login.id,
                BasicLogin.otp_secret.is_not(None),
                or_(BasicLogin.last_used_otp_at.is_(None), BasicLogin.last_used_otp_at < step_at)
            ) == 1

    # ==================== BACKUP CODES ====================

    def generate_backup_codes(self) -> List[str]:
        """Distinct codes of uppercase letters, e.g. 'QWHXKZPA'"""
        codes = []
        while len(codes) < self.backup_code_count:
            code = ''.join(
                secrets.choice(self.BACKUP_CODE_ALPHABET)
                for _ in range(self.backup_code_length)
            )
            if code not in codes:
                codes.append(code)
        return codes

    @staticmethod
    def hash_backup_code(code: str) -> bytes:
        return TokenCodec.hash(code.upper().encode())

    def _store_backup_codes(self, login: BasicLogin, codes: List[str]) -> None:
        self.store.delete(BackupCode, BackupCode.login_id == login.id)
        self.store.insert_all([
            BackupCode(login_id=login.id, hashed_code=self.hash_backup_code(code))
            for code in codes
        ])

    def _consume_backup_code(self, login: BasicLogin, code: str) -> bool:
        # Only one of two concurrent uses sees the row and deletes it
        with self.store.atomic():
            removed = self.store.delete(
                BackupCode,
                BackupCode.login_id == login.id,
                BackupCode.hashed_code == self.hash_backup_code(code)
            )
        if removed:
            logger.info("Backup code used for user %s", login.user_id)
        return removed == 1

    def regenerate_backup_codes(self, user: User) -> List[str]:
        """
        Raises:
            NotFound: no login, or 2FA not enabled
        """
        login = self.store.get(BasicLogin, user_id=user.id)
        if not login or not login.otp_enabled:
            raise NotFound("Two-factor authentication not enabled")

        codes = self.generate_backup_codes()
        with self.store.atomic():
            # Re-check under the write; a concurrent disable leaves no secret
            enabled = self.store.update(
                BasicLogin,
                {'updated_at': utcnow()},
                BasicLogin.id == login.id,
                BasicLogin.otp_secret.is_not(None)
            )
            if not enabled:
                raise NotFound("Two-factor authentication not enabled")
            self._store_backup_codes(login, codes)
        return codes

    # ==================== TEARDOWN ====================

    def disable(self, user: User) -> None:
        """
        Clear secret, backup codes and replay marker together.

        Raises:
            NotFound: user has no login
        """
        login = self.store.get(BasicLogin, user_id=user.id)
        if not login:
            raise NotFound("Login not found")

        with self.store.atomic():
            self.store.update(
                BasicLogin,
                {'otp_secret': None, 'last_used_otp_at': None},
                BasicLogin.id == login.id
            )
            self.store.delete(BackupCode, BackupCode.login_id == login.id)

        logger.info("Two-factor authentication disabled for user %s", user.id)
