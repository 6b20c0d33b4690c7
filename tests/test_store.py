"""
Tests for the store's atomic unit and conditional operations, and config selection.
"""

import pytest
from sqlalchemy import select

from identity.config import DevelopmentConfig, ProductionConfig, TestingConfig, get_config
from identity.models import User


class TestAtomic:
    def test_commits_on_success(self, identity, db):
        with identity.store.atomic():
            identity.store.insert(User(id="committed"))
        db.rollback()
        assert identity.store.get(User, id="committed") is not None

    def test_rolls_back_everything_on_error(self, identity, db):
        with pytest.raises(RuntimeError):
            with identity.store.atomic():
                identity.store.insert(User(id="first"))
                identity.store.insert(User(id="second"))
                raise RuntimeError("half way")
        assert db.execute(select(User)).first() is None

    def test_nested_units_join_the_outer_one(self, identity, db):
        with pytest.raises(RuntimeError):
            with identity.store.atomic():
                with identity.store.atomic():
                    identity.store.insert(User(id="inner"))
                raise RuntimeError("outer fails after inner finished")
        assert identity.store.get(User, id="inner") is None


class TestConditionalOperations:
    def test_update_reports_rowcount(self, identity, factory):
        user = factory.user()
        with identity.store.atomic():
            assert identity.store.update(User, {"created_at": user.created_at}, User.id == user.id) == 1
            assert identity.store.update(User, {"created_at": user.created_at}, User.id == "missing") == 0

    def test_delete_reports_rowcount(self, identity, factory):
        user = factory.user()
        with identity.store.atomic():
            assert identity.store.delete(User, User.id == "missing") == 0
            assert identity.store.delete(User, User.id == user.id) == 1

    def test_lock_returns_matching_rows(self, identity, factory):
        user = factory.user()
        factory.user()
        with identity.store.atomic():
            assert [u.id for u in identity.store.lock(User, User.id == user.id)] == [user.id]


class TestOnCommit:
    def test_runs_after_outer_commit(self, identity):
        calls = []
        with identity.store.atomic():
            with identity.store.atomic():
                identity.store.on_commit(lambda: calls.append("done"))
            assert calls == []
        assert calls == ["done"]

    def test_dropped_on_rollback(self, identity):
        calls = []
        with pytest.raises(RuntimeError):
            with identity.store.atomic():
                identity.store.on_commit(lambda: calls.append("done"))
                raise RuntimeError("rolled back")
        with identity.store.atomic():
            pass
        assert calls == []

    def test_runs_immediately_outside_a_unit(self, identity):
        calls = []
        identity.store.on_commit(lambda: calls.append("done"))
        assert calls == ["done"]


class TestGetConfig:
    @pytest.mark.parametrize("env, expected", [
        ("development", DevelopmentConfig),
        ("testing", TestingConfig),
        ("production", ProductionConfig),
        ("anything-else", ProductionConfig),
    ])
    def test_selects_by_environment(self, monkeypatch, env, expected):
        monkeypatch.setenv("IDENTITY_ENV", env)
        assert type(get_config()) is expected

    def test_policy_defaults(self):
        config = ProductionConfig()
        assert config.SESSION_TTL.days == 60
        assert config.PASSWORD_RESET_TOKEN_EXPIRES.total_seconds() == 3600
        assert (config.PASSWORD_MIN_LENGTH, config.PASSWORD_MAX_LENGTH) == (12, 80)
        assert config.MFA_BACKUP_CODE_COUNT == 10
        assert config.MFA_BACKUP_CODE_LENGTH == 8
