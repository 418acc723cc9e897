from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

_DEPTH_KEY = "atomic_depth"


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Unit of work. The outermost block commits or rolls back; nested blocks join it."""
    depth = db.info.get(_DEPTH_KEY, 0)
    db.info[_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except BaseException:
        if depth == 0:
            db.rollback()
        raise
    finally:
        db.info[_DEPTH_KEY] = depth


def commit_refresh(db: Session, obj):
    with atomic(db):
        db.add(obj)
        db.flush()
    db.refresh(obj)
    return obj
