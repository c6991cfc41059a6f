"""
Transaction scope for the Warrant store.

Every mutating operation runs inside one ``TransactionManager.transaction()``
block: one SQLAlchemy session, one commit or rollback. A transaction
requested while another one is already active in the same context joins
the outer one instead of opening a savepoint, so composed operations commit
or roll back as a unit.

Example:
    >>> manager = TransactionManager(create_store_engine("sqlite://"))
    >>> manager.create_schema()
    >>> with manager.transaction("attach") as session:
    ...     session.add(TeamPolicyModel(team_id="t1", policy_id="p1"))
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager, nullcontext
from contextvars import ContextVar
from dataclasses import dataclass, field
from itertools import count
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from warrant.exceptions import ConflictError, StoreFailure
from warrant.store.models import Base

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_SQLSTATE = "23505"

_manager_ids = count(1)


@dataclass
class Job:
    """
    State shared by the tasks of one ``TransactionManager.run`` call.

    Tasks read their inputs from ``params`` and leave whatever the caller
    needs in ``result``.
    """
    params: dict[str, Any] = field(default_factory=dict)
    result: Any = None


Task = Callable[[Job, Session], None]


def is_unique_violation(error: BaseException) -> bool:
    """
    Check whether a driver error is a uniqueness violation.

    PostgreSQL drivers expose SQLSTATE 23505 (``pgcode`` for psycopg2,
    ``sqlstate`` for psycopg 3); SQLite only reports it in the message.
    """
    orig = getattr(error, "orig", error)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == UNIQUE_VIOLATION_SQLSTATE
    message = str(orig)
    return "UNIQUE constraint failed" in message or "duplicate key value" in message


def create_store_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the SQLAlchemy engine for ``database_url``.

    An in-memory SQLite database lives as long as its connection, so it is
    served from a single shared connection.
    """
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo)


class TransactionManager:
    """
    Runs store work under a single commit/rollback boundary.

    Attributes:
        engine: The SQLAlchemy engine sessions are bound to.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self._active: ContextVar[Session | None] = ContextVar(
            f"warrant_transaction_{next(_manager_ids)}", default=None
        )
        # a StaticPool hands the same connection to every thread
        self._lock = threading.RLock() if isinstance(engine.pool, StaticPool) else None

    @property
    def in_transaction(self) -> bool:
        """True while a transaction is open in the current context."""
        return self._active.get() is not None

    def create_schema(self) -> None:
        """Create every table that does not exist yet."""
        Base.metadata.create_all(self.engine)

    def drop_schema(self) -> None:
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def transaction(self, operation: str = "transaction") -> Iterator[Session]:
        """
        Open a transaction, or join the one already active.

        On success the transaction commits when the outermost block exits.
        Any exception rolls everything back. Store errors are translated:
        a uniqueness violation becomes ``ConflictError``, any other
        SQLAlchemy error becomes ``StoreFailure``.

        When the engine shares one connection between threads (in-memory
        SQLite), outermost transactions run one at a time.

        Args:
            operation: Name of the operation, used in errors and logs.

        Yields:
            The session of the transaction.
        """
        active = self._active.get()
        if active is not None:
            yield active
            return

        with self._lock or nullcontext():
            session = self._session_factory()
            token = self._active.set(session)
            try:
                with session.begin():
                    yield session
            except IntegrityError as e:
                if is_unique_violation(e):
                    logger.debug(f"Uniqueness violation during {operation}: {e.orig}")
                    raise ConflictError(
                        f"Conflict during {operation}: record already exists"
                    ) from e
                raise StoreFailure(operation, str(e.orig)) from e
            except SQLAlchemyError as e:
                logger.error(f"Store failure during {operation}: {e}")
                raise StoreFailure(operation, str(e)) from e
            finally:
                self._active.reset(token)
                session.close()

    def run(
        self,
        tasks: Iterable[Task],
        job: Job | None = None,
        operation: str = "transaction",
    ) -> Job:
        """
        Execute ``tasks`` in order inside one transaction.

        Each task is called as ``task(job, session)``. The first task that
        raises aborts the run and rolls back the work of every task before
        it.

        Returns:
            The job, after every task ran.
        """
        job = job if job is not None else Job()
        with self.transaction(operation) as session:
            for task in tasks:
                task(job, session)
        return job
