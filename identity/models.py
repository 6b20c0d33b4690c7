import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, LargeBinary, String, Text
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    emails = relationship("Email", back_populates="user", cascade="all, delete-orphan")
    login = relationship("BasicLogin", back_populates="user", uselist=False, cascade="all, delete-orphan")
    sessions = relationship("Session", back_populates="user", cascade="all, delete-orphan")
    password_tokens = relationship("PasswordToken", back_populates="user", cascade="all, delete-orphan")


class Email(Base):
    __tablename__ = 'user_emails'

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    email = Column(String(160), nullable=False)  # As entered
    email_key = Column(String(160), unique=True, nullable=False)  # Lowercased uniqueness key

    # Confirmation
    hashed_token = Column(LargeBinary(32), unique=True, nullable=True)  # Cleared once confirmed
    generated_at = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="emails")

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None


class BasicLogin(Base):
    __tablename__ = 'user_basic_logins'

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)

    hashed_password = Column(String(255), nullable=False)

    # Two-factor; a null secret means 2FA is off
    otp_secret = Column(Text, nullable=True)  # Encrypted
    last_used_otp_at = Column(DateTime, nullable=True)  # Start of the last accepted time step

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="login")
    backup_codes = relationship("BackupCode", back_populates="login", cascade="all, delete-orphan")

    @property
    def otp_enabled(self) -> bool:
        return self.otp_secret is not None


class BackupCode(Base):
    __tablename__ = 'user_backup_codes'

    id = Column(Integer, primary_key=True, autoincrement=True)
    login_id = Column(String(36), ForeignKey('user_basic_logins.id', ondelete='CASCADE'), nullable=False, index=True)
    hashed_code = Column(LargeBinary(32), nullable=False)  # SHA-256 of the code

    login = relationship("BasicLogin", back_populates="backup_codes")


class Session(Base):
    __tablename__ = 'user_sessions'

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    client = Column(String(255))  # Device / user agent label
    token_hash = Column(LargeBinary(32), unique=True, nullable=False)  # SHA-256 of the actual token

    # Lifecycle
    inserted_at = Column(DateTime, default=utcnow, nullable=False)  # Expiry counts from here
    last_active_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="sessions")


class PasswordToken(Base):
    __tablename__ = 'user_password_tokens'

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    hashed_token = Column(LargeBinary(32), unique=True, nullable=False)
    inserted_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="password_tokens")


def init_db(engine):
    """Create all tables on the given engine"""
    Base.metadata.create_all(engine)
