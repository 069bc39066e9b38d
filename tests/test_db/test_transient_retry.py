# tests/test_db/test_transient_retry.py

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.exceptions import TransientStoreError
from app.db.session import is_transient_db_error, with_transient_retry

pytestmark = pytest.mark.anyio


class FakeSession:
    def __init__(self):
        self.rollbacks = 0

    async def rollback(self):
        self.rollbacks += 1


def _dropped():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


async def test_retries_once_after_a_connection_failure():
    session = FakeSession()
    calls = []

    async def op(s):
        calls.append(1)
        if len(calls) == 1:
            raise _dropped()
        return "ok"

    assert await with_transient_retry(session, op, label="probe") == "ok"
    assert len(calls) == 2
    assert session.rollbacks == 1


async def test_second_failure_surfaces_as_transient_store_error():
    session = FakeSession()

    async def op(s):
        raise _dropped()

    with pytest.raises(TransientStoreError, match="probe"):
        await with_transient_retry(session, op, label="probe")
    assert session.rollbacks == 2


async def test_non_transient_errors_are_not_retried():
    session = FakeSession()
    calls = []

    async def op(s):
        calls.append(1)
        raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    with pytest.raises(IntegrityError):
        await with_transient_retry(session, op)
    assert len(calls) == 1
    assert session.rollbacks == 0


def test_is_transient_db_error():
    assert is_transient_db_error(_dropped())
    assert not is_transient_db_error(IntegrityError("x", {}, Exception("dup")))
    assert not is_transient_db_error(ValueError("nope"))
