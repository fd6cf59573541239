from unittest.mock import AsyncMock

import psycopg
import pytest

from priority_inbox.db import helpers
from priority_inbox.db.helpers import DatabaseError


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "helper, operation",
    [
        (helpers.fetch_one, "fetch_one"),
        (helpers.fetch_all, "fetch_all"),
        (helpers.execute_query, "execute"),
    ],
)
async def test_driver_errors_become_database_errors(monkeypatch, helper, operation):
    monkeypatch.setattr(
        "priority_inbox.db.helpers.get_db_connection",
        AsyncMock(side_effect=psycopg.OperationalError("connection refused")),
    )

    with pytest.raises(DatabaseError) as exc_info:
        await helper("SELECT 1", ())

    assert exc_info.value.operation == operation
    assert isinstance(exc_info.value.__cause__, psycopg.OperationalError)


def test_database_error_defaults():
    error = DatabaseError("boom")

    assert str(error) == "boom"
    assert error.operation == "unknown"
    assert not hasattr(error, "recoverable")
