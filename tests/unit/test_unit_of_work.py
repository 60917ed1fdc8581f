from decimal import Decimal
import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from record_store.application.unit_of_work import run_atomically
from record_store.domain import messages
from record_store.domain.exceptions import ConflictError, InternalError, NotFoundError
from record_store.domain.models import Record


def new_record():
    return Record(
        artist="Portishead", album="Dummy", format="CD", category="Electronic",
        price=Decimal("12.00"), qty=3, track_list=[],
    )


def test_stale_writes_are_retried_then_surface_as_conflict(db):
    calls = []

    def unit():
        calls.append(1)
        raise StaleDataError("UPDATE statement on table 'records' expected to update 1 row(s); 0 were matched.")

    with pytest.raises(ConflictError) as excinfo:
        run_atomically(db, unit, 3, "order creation")

    assert len(calls) == 3
    assert excinfo.value.message == messages.STOCK_CONFLICT
    assert excinfo.value.detail == {"operation": "order creation", "attempts": 3}


def test_a_later_attempt_can_succeed(db):
    calls = []

    def unit():
        calls.append(1)
        if len(calls) < 2:
            raise StaleDataError("version changed")
        record = new_record()
        db.add(record)
        return record

    record = run_atomically(db, unit, 3, "record creation")

    assert len(calls) == 2
    assert record.id is not None


def test_at_least_one_attempt_is_made(db):
    calls = []

    def unit():
        calls.append(1)
        return "done"

    assert run_atomically(db, unit, 0, "noop") == "done"
    assert calls == [1]


def test_domain_errors_are_not_retried(db):
    calls = []

    def unit():
        calls.append(1)
        raise NotFoundError(messages.record_not_found(9), record_id=9)

    with pytest.raises(NotFoundError):
        run_atomically(db, unit, 3, "order creation")
    assert calls == [1]


def test_integrity_error_goes_through_the_mapper(db):
    def unit():
        raise IntegrityError("INSERT INTO records", {}, Exception("UNIQUE constraint failed"))

    with pytest.raises(ConflictError) as excinfo:
        run_atomically(db, unit, 3, "record creation", on_integrity_error=lambda e: ConflictError("duplicate", artist="Portishead"))

    assert excinfo.value.message == "duplicate"
    assert excinfo.value.detail == {"artist": "Portishead"}
    assert isinstance(excinfo.value.__cause__, IntegrityError)


def test_integrity_error_without_mapper_is_a_conflict(db):
    def unit():
        raise IntegrityError("UPDATE records", {}, Exception("CHECK constraint failed"))

    with pytest.raises(ConflictError) as excinfo:
        run_atomically(db, unit, 3, "order update")
    assert excinfo.value.detail == {"operation": "order update"}


def test_database_failure_is_internal_and_rolled_back(db):
    record = new_record()

    def unit():
        db.execute(text("SELECT 1"))
        db.add(record)
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    with pytest.raises(InternalError) as excinfo:
        run_atomically(db, unit, 3, "order removal")

    assert excinfo.value.message == messages.INTERNAL_SERVER
    assert not db.in_transaction()
    assert record not in db
    assert db.scalar(select(func.count()).select_from(Record)) == 0
