"""
Identity core: email/password credentials, email confirmation, password
reset, revocable sessions and TOTP two-factor authentication with backup
codes.
"""

from .auth import Identity
from .config import (
    DevelopmentConfig,
    ProductionConfig,
    SecurityConfig,
    TestingConfig,
    get_config,
)
from .exceptions import (
    IdentityError,
    InvalidCode,
    InvalidCurrentPassword,
    InvalidToken,
    NotFound,
    OnlyEmail,
    ValidationError,
)
from .login import PasswordChange
from .mfa import PendingTwoFactor
from .models import Base, init_db
from .notifier import LoggingNotifier, MemoryNotifier, Notifier

__all__ = [
    'Identity',
    'SecurityConfig',
    'DevelopmentConfig',
    'ProductionConfig',
    'TestingConfig',
    'get_config',
    'IdentityError',
    'InvalidCode',
    'InvalidCurrentPassword',
    'InvalidToken',
    'NotFound',
    'OnlyEmail',
    'ValidationError',
    'PasswordChange',
    'PendingTwoFactor',
    'Base',
    'init_db',
    'Notifier',
    'LoggingNotifier',
    'MemoryNotifier',
]
