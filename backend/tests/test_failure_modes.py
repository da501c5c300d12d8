"""
Failure Injection Tests.

Validates resilience against storage and network failures.
"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from backend.app.core.exceptions import AtomicityFailureError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError
from backend.app.domain.ledger.deduction_engine import DeductionEngine
from backend.app.domain.ledger.entry_store import AdvanceStore
from backend.app.domain.ledger.expense_bridge import ExpenseAdvanceBridge
from backend.app.models.expense import Expense
from backend.app.models.ledger_enums import EntryKind
from backend.app.schemas.expense import ExpenseWithDeductionCreate


def disk_failure(*args, **kwargs):
    raise OperationalError("UPDATE advances", {}, Exception("disk I/O error"))


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=1)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    with pytest.raises(CircuitOpenError) as exc_info:
        await cb.call(failing_func)
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_circuit_breaker_recovers(mocker):
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=30)

    async def failing_func():
        raise ValueError("Boom")

    async def healthy_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Past the reset timeout the next call is a trial
    mocker.patch("backend.app.core.reliability.time.time", return_value=cb.last_failure_time + 31)
    assert await cb.call(healthy_func) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0


@pytest.mark.asyncio
async def test_circuit_breaker_ignores_untracked_errors():
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=30, tracked_exceptions=(ConnectionError,))

    async def rejected():
        raise KeyError("business error")

    for _ in range(3):
        with pytest.raises(KeyError):
            await cb.call(rejected)
    assert cb.state == "CLOSED"


@pytest.mark.asyncio
async def test_storage_failure_mid_expense_rolls_back(db_session, make_advance, mocker):
    advance = await make_advance(kind=EntryKind.CLIENT_EXPENSE_ADVANCE, amount="1000")
    advance_id = advance.id
    mocker.patch.object(DeductionEngine, "deduct", mocker.AsyncMock(side_effect=disk_failure))

    with pytest.raises(AtomicityFailureError) as exc_info:
        await ExpenseAdvanceBridge.record_expense_with_deduction(db_session, ExpenseWithDeductionCreate(
            client_id=1,
            amount=Decimal("120"),
            description="Translation",
            date=date(2024, 3, 1),
        ))

    assert exc_info.value.details == {"reason": "OperationalError"}
    assert isinstance(exc_info.value.__cause__, OperationalError)

    count = await db_session.execute(select(func.count(Expense.id)))
    assert count.scalar() == 0
    assert (await AdvanceStore.get(db_session, advance_id)).balance_remaining_minor == 100000


@pytest.mark.asyncio
async def test_storage_failure_reported_over_http(client, mocker):
    await client.post("/v1/advances", json={
        "kind": "client_expense_advance", "client_id": 1, "amount": "1000", "date_received": "2024-01-01"
    })
    mocker.patch.object(DeductionEngine, "deduct", mocker.AsyncMock(side_effect=disk_failure))

    response = await client.post("/v1/advances/expense-with-deduction", json={
        "client_id": 1, "amount": "120", "description": "Translation", "date": "2024-03-01"
    })

    assert response.status_code == 500
    assert response.json()["error_code"] == "ERR_LEDGER_ATOMICITY"

    response = await client.get("/v1/expenses")
    assert response.json()["total"] == 0
