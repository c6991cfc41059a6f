"""Tests for the transaction manager."""

from __future__ import annotations

import threading
from collections.abc import Generator

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from warrant import EntityRef
from warrant.exceptions import ConflictError, NotFoundError, StoreFailure
from warrant.store import Job, TransactionManager, create_store_engine, is_unique_violation
from warrant.store.models import OrganizationModel


@pytest.fixture
def transactions() -> Generator[TransactionManager, None, None]:
    engine = create_store_engine("sqlite://")
    manager = TransactionManager(engine)
    manager.create_schema()
    yield manager
    engine.dispose()


def _organization_ids(manager: TransactionManager) -> list[str]:
    with manager.transaction() as session:
        return list(session.scalars(select(OrganizationModel.id).order_by(OrganizationModel.id)))


def _add(organization_id: str):
    def task(job: Job, session) -> None:
        session.add(OrganizationModel(id=organization_id, name=organization_id))
        session.flush()
        job.result = (job.result or []) + [organization_id]

    return task


def _fail(job: Job, session) -> None:
    raise NotFoundError("team", "missing")


class TestTransaction:
    """Test TransactionManager.transaction()."""

    def test_commit(self, transactions):
        with transactions.transaction() as session:
            session.add(OrganizationModel(id="ACME", name="Acme"))
        assert _organization_ids(transactions) == ["ACME"]

    def test_rollback_on_error(self, transactions):
        with pytest.raises(NotFoundError):
            with transactions.transaction() as session:
                session.add(OrganizationModel(id="ACME", name="Acme"))
                session.flush()
                raise NotFoundError("team", "missing")
        assert _organization_ids(transactions) == []

    def test_nested_joins_outer(self, transactions):
        with transactions.transaction() as outer:
            assert transactions.in_transaction is True
            with transactions.transaction() as inner:
                assert inner is outer
        assert transactions.in_transaction is False

    def test_nested_failure_rolls_back_outer(self, transactions):
        with pytest.raises(NotFoundError):
            with transactions.transaction() as outer:
                outer.add(OrganizationModel(id="ACME", name="Acme"))
                with transactions.transaction() as inner:
                    inner.add(OrganizationModel(id="GLOBEX", name="Globex"))
                    raise NotFoundError("team", "missing")
        assert _organization_ids(transactions) == []

    def test_unique_violation_becomes_conflict(self, transactions):
        with transactions.transaction() as session:
            session.add(OrganizationModel(id="ACME", name="Acme"))

        with pytest.raises(ConflictError) as exc_info:
            with transactions.transaction("create_organization") as session:
                session.add(OrganizationModel(id="ACME", name="Acme again"))
        assert "create_organization" in str(exc_info.value)
        assert exc_info.value.__cause__ is not None

    def test_other_errors_become_store_failure(self, transactions):
        with pytest.raises(StoreFailure) as exc_info:
            with transactions.transaction("read"):
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        assert exc_info.value.operation == "read"
        assert isinstance(exc_info.value.__cause__, OperationalError)


class TestRun:
    """Test TransactionManager.run()."""

    def test_tasks_run_in_order(self, transactions):
        job = transactions.run([_add("B"), _add("A")])
        assert job.result == ["B", "A"]
        assert _organization_ids(transactions) == ["A", "B"]

    def test_job_passed_through(self, transactions):
        job = Job(params={"name": "x"})
        assert transactions.run([], job) is job

    def test_failure_rolls_back_every_task(self, transactions):
        with pytest.raises(NotFoundError):
            transactions.run([_add("A"), _add("B"), _fail])
        assert _organization_ids(transactions) == []

    def test_run_inside_transaction_is_flattened(self, transactions):
        with pytest.raises(NotFoundError):
            with transactions.transaction():
                transactions.run([_add("A")])
                raise NotFoundError("team", "missing")
        assert _organization_ids(transactions) == []


class TestConcurrency:
    """Transactions on a shared single-connection engine."""

    def test_uncommitted_write_is_not_read_by_other_thread(self, transactions):
        written = threading.Event()
        proceed = threading.Event()
        seen: list[list[str]] = []
        aborted: list[BaseException] = []

        def writer() -> None:
            try:
                with transactions.transaction("write") as session:
                    session.add(OrganizationModel(id="PENDING", name="Pending"))
                    session.flush()
                    written.set()
                    proceed.wait(timeout=5)
                    raise RuntimeError("abort")
            except RuntimeError as e:
                aborted.append(e)

        writing = threading.Thread(target=writer)
        writing.start()
        assert written.wait(timeout=5)

        reading = threading.Thread(target=lambda: seen.append(_organization_ids(transactions)))
        reading.start()
        reading.join(timeout=0.2)
        assert reading.is_alive()

        proceed.set()
        writing.join(timeout=5)
        reading.join(timeout=5)

        assert len(aborted) == 1
        assert seen == [[]]
        assert _organization_ids(transactions) == []

    def test_decision_waits_for_rolled_back_attach(self, seeded, make_policy):
        make_policy("ACME", "reader", [("Allow", ["read"], ["*"])])
        written = threading.Event()
        proceed = threading.Event()
        decisions: list[bool] = []

        def failing_attach() -> None:
            try:
                with seeded.transactions.transaction("attach"):
                    seeded.attachments.attach(EntityRef.user("alice"), "reader", "ACME")
                    written.set()
                    proceed.wait(timeout=5)
                    raise RuntimeError("abort")
            except RuntimeError:
                pass

        def decide() -> None:
            decisions.append(seeded.is_authorized("alice", "read", "x", "ACME").access)

        writing = threading.Thread(target=failing_attach)
        writing.start()
        assert written.wait(timeout=5)
        deciding = threading.Thread(target=decide)
        deciding.start()
        deciding.join(timeout=0.2)

        proceed.set()
        writing.join(timeout=5)
        deciding.join(timeout=5)

        assert decisions == [False]
        assert seeded.attachments.list(EntityRef.user("alice"), "ACME") == []


class _PgError(Exception):
    def __init__(self, code: str):
        super().__init__("error")
        self.pgcode = code


class _Psycopg3Error(Exception):
    def __init__(self, code: str):
        super().__init__("error")
        self.sqlstate = code


class _Wrapped(Exception):
    def __init__(self, orig: Exception):
        super().__init__(str(orig))
        self.orig = orig


class TestIsUniqueViolation:
    """Test is_unique_violation()."""

    def test_postgres_codes(self):
        assert is_unique_violation(_Wrapped(_PgError("23505"))) is True
        assert is_unique_violation(_Wrapped(_PgError("23503"))) is False
        assert is_unique_violation(_Wrapped(_Psycopg3Error("23505"))) is True

    def test_sqlite_message(self):
        assert is_unique_violation(Exception("UNIQUE constraint failed: teams.id")) is True
        assert is_unique_violation(Exception("NOT NULL constraint failed: teams.name")) is False
