"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every service.
    Services receive a SQLAlchemy ``Session`` and use ``session.flush()``
    -- never ``session.commit()``.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit.  Each mutating operation runs inside
      a SAVEPOINT (``_atomic``), so a rejected operation rolls back only
      its own writes and the document is left exactly as it was.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage the outer transaction (commit/rollback).
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        """Run the block in a savepoint; roll it back if the block raises."""
        with self.session.begin_nested():
            yield
