"""
Store capability used by every identity component.

Components never build sessions or transactions themselves. They ask the
store to get, insert, conditionally update or conditionally delete rows, and
group mutations with :meth:`Store.atomic` so that either all of them land or
none do.
"""

from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session as DbSession


class Store:
    """Thin wrapper around one SQLAlchemy session (one per caller)"""

    def __init__(self, db: DbSession):
        self.db = db
        self._depth = 0
        self._after_commit: List[Callable[[], None]] = []

    @contextmanager
    def atomic(self) -> Iterator["Store"]:
        """
        All-or-nothing unit. Commits on success, rolls back on any exception.
        Nested calls join the outermost unit.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self
            self.db.commit()
        except Exception:
            self.db.rollback()
            self._after_commit.clear()
            raise
        finally:
            self._depth = 0

        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            callback()

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the outermost unit has committed"""
        if self._depth:
            self._after_commit.append(callback)
        else:
            callback()

    def get(self, model, **by):
        """Row by unique key, or None"""
        return self.db.execute(select(model).filter_by(**by)).scalars().first()

    def find(self, model, *criteria, order_by=None) -> List:
        stmt = select(model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return list(self.db.execute(stmt).scalars())

    def lock(self, model, *criteria) -> List:
        """Rows matching ``criteria``, locked until the unit ends (no-op on SQLite)"""
        stmt = select(model).where(*criteria).with_for_update()
        return list(self.db.execute(stmt).scalars())

    def insert(self, obj):
        """Add and flush, so constraint violations surface here"""
        self.db.add(obj)
        self.db.flush()
        return obj

    def insert_all(self, objs: List) -> List:
        self.db.add_all(objs)
        self.db.flush()
        return objs

    def update(self, model, values: dict, *criteria) -> int:
        """Conditional update. Returns the number of rows changed."""
        stmt = update(model).where(*criteria).values(**values)
        return self.db.execute(stmt).rowcount

    def update_returning(self, model, values: dict, returning, *criteria) -> Optional[object]:
        """
        Conditional update that hands back one column of the matched row,
        or None when nothing matched. Lookup and write are one statement.
        """
        stmt = update(model).where(*criteria).values(**values).returning(returning)
        return self.db.execute(stmt).scalars().first()

    def delete(self, model, *criteria) -> int:
        """Conditional delete. Returns the number of rows removed."""
        stmt = delete(model).where(*criteria)
        return self.db.execute(stmt).rowcount
