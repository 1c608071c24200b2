"""Transaction scope shared by the multi-step hierarchy operations."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.repositories.hierarchy_repository import HierarchyRepository


class UnitOfWork:
    """One atomic unit of work: a session plus the repository bound to it.

    Created once per top-level operation and handed down to every nested
    helper, so a whole cascade commits or rolls back together.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = HierarchyRepository(db)


@contextmanager
def unit_of_work(db: Session) -> Iterator[UnitOfWork]:
    """Commit on clean exit, roll back and re-raise on any failure."""

    uow = UnitOfWork(db)
    try:
        yield uow
        db.commit()
    except Exception:
        db.rollback()
        raise
