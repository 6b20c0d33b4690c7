"""
Configuration Module for the Identity Core

This module holds the security policy values used by the credential,
token, session and two-factor components.
CRITICAL: Load all secrets from environment variables in production.
"""

import base64
import os
from datetime import timedelta


class SecurityConfig:
    """
    Central configuration class for credentials and session management.
    All security-critical parameters are defined here with secure defaults.

    An instance is handed to :class:`identity.auth.Identity` at construction.
    """

    # ==================== CRYPTOGRAPHIC SETTINGS ====================

    # Urlsafe base64 of 32 random bytes, used to encrypt TOTP secrets at rest
    ENCRYPTION_KEY = os.getenv('IDENTITY_ENCRYPTION_KEY', '')

    # Argon2id parameters - memory-hard KDF resistant to GPU attacks
    ARGON2_TIME_COST = 3  # Number of iterations
    ARGON2_MEMORY_COST = 65536  # 64 MB memory usage
    ARGON2_PARALLELISM = 4  # Number of parallel threads
    ARGON2_HASH_LENGTH = 32  # Output hash length in bytes
    ARGON2_SALT_LENGTH = 16  # Salt length in bytes

    # ==================== PASSWORD POLICY ====================

    PASSWORD_MIN_LENGTH = 12
    PASSWORD_MAX_LENGTH = 80

    # ==================== EMAIL POLICY ====================

    EMAIL_MAX_LENGTH = 160

    # ==================== TOKENS ====================

    # Random bytes behind every opaque token (sessions, confirmation, reset)
    TOKEN_BYTES = 32  # 256 bits of entropy

    # ==================== SESSION MANAGEMENT ====================

    # Absolute lifetime, counted from creation and never renewed by activity
    SESSION_TTL = timedelta(days=60)

    # ==================== PASSWORD RESET ====================

    PASSWORD_RESET_TOKEN_EXPIRES = timedelta(hours=1)

    # ==================== MFA SETTINGS ====================

    # TOTP settings (RFC 6238)
    TOTP_INTERVAL = 30  # Time step in seconds
    TOTP_DIGITS = 6  # Number of digits in OTP
    TOTP_VALID_WINDOW = 1  # Accepted drift in steps, each direction
    TOTP_ISSUER = 'Identity'  # App name in authenticator

    # Backup codes
    MFA_BACKUP_CODE_COUNT = 10
    MFA_BACKUP_CODE_LENGTH = 8

    # ==================== DATABASE SETTINGS ====================

    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///identity.db')


class DevelopmentConfig(SecurityConfig):
    """Development configuration - cheaper hashing, throwaway key"""
    ARGON2_TIME_COST = 2
    ARGON2_MEMORY_COST = 19456
    ARGON2_PARALLELISM = 1
    ENCRYPTION_KEY = os.getenv(
        'IDENTITY_ENCRYPTION_KEY',
        base64.urlsafe_b64encode(os.urandom(32)).decode()
    )


class TestingConfig(SecurityConfig):
    """Test configuration - minimal Argon2 cost, in-memory database"""
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 8
    ARGON2_PARALLELISM = 1
    ENCRYPTION_KEY = base64.urlsafe_b64encode(os.urandom(32)).decode()
    DATABASE_URL = 'sqlite://'


class ProductionConfig(SecurityConfig):
    """Production configuration - maximum security"""


# Configuration selector based on environment
def get_config() -> SecurityConfig:
    """
    Returns appropriate configuration based on environment.
    Default to production for safety.
    """
    env = os.getenv('IDENTITY_ENV', 'production')
    if env == 'development':
        return DevelopmentConfig()
    if env == 'testing':
        return TestingConfig()
    return ProductionConfig()
