"""
Balance Aggregator tests.
"""

import pytest
from decimal import Decimal

from backend.app.core.exceptions import LedgerValidationError
from backend.app.domain.ledger.balance_aggregator import BalanceAggregator, BalanceSelector
from backend.app.domain.ledger.deduction_engine import DeductionEngine
from backend.app.domain.ledger.entry_store import AdvanceStore
from backend.app.models.ledger_enums import EntryKind


@pytest.mark.asyncio
async def test_client_retainer_spans_matters_unless_narrowed(db_session, make_advance):
    await make_advance(client_id=1, matter_id=10, amount="1000")
    await make_advance(client_id=1, matter_id=20, amount="250.50")
    await make_advance(client_id=1, amount="100")
    await make_advance(client_id=2, amount="999")

    summary = await BalanceAggregator.get_client_retainer(db_session, client_id=1)
    assert summary.balance_for("USD") == 135050
    assert summary.entry_count == 3

    summary = await BalanceAggregator.get_client_retainer(db_session, client_id=1, matter_id=20)
    assert summary.balance_for("USD") == 25050
    assert summary.entry_count == 1


@pytest.mark.asyncio
async def test_kinds_are_kept_apart(db_session, make_advance):
    await make_advance(kind=EntryKind.CLIENT_RETAINER, client_id=1, amount="1000")
    await make_advance(kind=EntryKind.CLIENT_EXPENSE_ADVANCE, client_id=1, amount="300")
    await make_advance(kind=EntryKind.FEE_PAYMENT_FIXED, client_id=1, amount="5000")

    retainer = await BalanceAggregator.get_client_retainer(db_session, 1)
    expense = await BalanceAggregator.get_client_expense_advance(db_session, 1)
    everything = await BalanceAggregator.sum_balance(db_session, BalanceSelector(client_id=1))

    assert retainer.balance_for("USD") == 100000
    assert expense.balance_for("USD") == 30000
    # fee payments never hold a balance
    assert everything.balance_for("USD") == 130000
    assert everything.entry_count == 2


@pytest.mark.asyncio
async def test_deleted_and_refunded_entries_excluded(db_session, make_advance):
    kept = await make_advance(amount="1000")
    deleted = await make_advance(amount="200")
    refunded = await make_advance(amount="300")

    await DeductionEngine.deduct(db_session, kept.id, Decimal("400"))
    await AdvanceStore.soft_delete(db_session, deleted.id)
    await DeductionEngine.refund(db_session, refunded.id)
    await db_session.commit()

    summary = await BalanceAggregator.get_client_retainer(db_session, 1)
    assert summary.balances_minor == {"USD": 60000}
    assert summary.entry_count == 1


@pytest.mark.asyncio
async def test_balances_grouped_by_currency(db_session, make_advance):
    await make_advance(amount="1000", currency="USD")
    await make_advance(amount="500", currency="EUR")
    await make_advance(amount="250", currency="EUR")

    summary = await BalanceAggregator.get_client_retainer(db_session, 1)
    assert summary.balances_minor == {"EUR": 75000, "USD": 100000}


@pytest.mark.asyncio
async def test_lawyer_advance_balance(db_session, make_advance):
    await make_advance(kind=EntryKind.LAWYER_ADVANCE, lawyer_id=7, amount="500")
    await make_advance(kind=EntryKind.LAWYER_ADVANCE, lawyer_id=8, amount="800")

    summary = await BalanceAggregator.get_lawyer_advance(db_session, 7)
    assert summary.balance_for("USD") == 50000


@pytest.mark.asyncio
async def test_empty_balance_is_zero(db_session):
    summary = await BalanceAggregator.get_client_expense_advance(db_session, 42)
    assert summary.balances_minor == {}
    assert summary.balance_for("USD") == 0
    assert summary.entry_count == 0


@pytest.mark.asyncio
async def test_selector_validation(db_session):
    with pytest.raises(LedgerValidationError):
        await BalanceAggregator.sum_balance(db_session, BalanceSelector())
    with pytest.raises(LedgerValidationError):
        await BalanceAggregator.sum_balance(db_session, BalanceSelector(lawyer_id=1, matter_id=3))
    with pytest.raises(LedgerValidationError):
        await BalanceAggregator.sum_balance(
            db_session, BalanceSelector(client_id=1, kind=EntryKind.FEE_PAYMENT_OTHER)
        )


@pytest.mark.asyncio
async def test_ledger_totals(db_session, make_advance):
    await make_advance(kind=EntryKind.CLIENT_RETAINER, amount="1000")
    await make_advance(kind=EntryKind.FEE_PAYMENT_SUCCESS, amount="2000")
    await make_advance(kind=EntryKind.FEE_PAYMENT_MILESTONE, amount="500")
    await make_advance(kind=EntryKind.CLIENT_EXPENSE_ADVANCE, amount="300")
    await make_advance(kind=EntryKind.LAWYER_ADVANCE, amount="400")
    await make_advance(kind=EntryKind.CLIENT_RETAINER, amount="50", currency="EUR")

    totals = await BalanceAggregator.ledger_totals(db_session)

    assert totals["USD"] == {
        "retainers": 100000,
        "fee_payments": 250000,
        "all_fees": 350000,
        "expense_advances": 30000,
        "lawyer_advances": 40000,
    }
    assert totals["EUR"]["retainers"] == 5000
    assert totals["EUR"]["all_fees"] == 5000


@pytest.mark.asyncio
async def test_low_balance_entries(db_session, make_advance):
    alerting = await make_advance(amount="1000", minimum_balance_alert=Decimal("300"))
    await make_advance(amount="1000", minimum_balance_alert=Decimal("100"))
    lawyer_low = await make_advance(kind=EntryKind.LAWYER_ADVANCE, amount="400")
    await make_advance(kind=EntryKind.LAWYER_ADVANCE, lawyer_id=8, amount="900")

    await DeductionEngine.deduct(db_session, alerting.id, Decimal("800"))
    await db_session.commit()

    low = await BalanceAggregator.low_balance_entries(db_session, lawyer_min_balance=Decimal("500"))
    assert [entry.id for entry in low] == [alerting.id, lawyer_low.id]
