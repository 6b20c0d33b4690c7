"""
Shared fixtures: in-memory SQLite, cheap Argon2 settings, recording notifier.
"""

import itertools

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session as DBSession

from identity import Identity, MemoryNotifier, TestingConfig, init_db
from identity.crypto import PasswordHasher
from identity.models import BasicLogin, Email, User
from identity.utils import normalize_email, utcnow

VALID_PASSWORD = "hello world!"

_email_counter = itertools.count()


def unique_email() -> str:
    return f"user{next(_email_counter)}@example.com"


@pytest.fixture(scope="session")
def config():
    return TestingConfig()


@pytest.fixture(scope="session")
def hasher(config):
    return PasswordHasher(config)


@pytest.fixture
def db():
    engine = create_engine("sqlite://")
    init_db(engine)
    session = DBSession(engine)
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed database, so separate sessions see each other's commits"""
    engine = create_engine(f"sqlite:///{tmp_path / 'shared.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def notifier():
    return MemoryNotifier()


@pytest.fixture
def identity(db, config, notifier, hasher):
    return Identity(db, config, notifier=notifier, hasher=hasher)


class Factory:
    """Inserts records directly, skipping validation and notification."""

    def __init__(self, identity: Identity):
        self.identity = identity
        self.store = identity.store

    def user(self) -> User:
        with self.store.atomic():
            return self.store.insert(User())

    def login(self, user: User, password: str = VALID_PASSWORD) -> BasicLogin:
        with self.store.atomic():
            return self.store.insert(BasicLogin(
                user_id=user.id,
                hashed_password=self.identity.hasher.hash(password)
            ))

    def email(self, user: User, email: str = None, confirmed: bool = True) -> Email:
        email = email or unique_email()
        with self.store.atomic():
            return self.store.insert(Email(
                user_id=user.id,
                email=email,
                email_key=normalize_email(email),
                confirmed_at=utcnow() if confirmed else None
            ))


@pytest.fixture
def factory(identity):
    return Factory(identity)
