"""
Allocation/Deduction Engine (Domain Logic).

Consumes funds from advances. Every deduction is all-or-nothing:
a request the entry cannot cover leaves it untouched.

Flow of a deduction:
1. Lock and re-read the entry (SELECT ... FOR UPDATE where supported)
2. Check state (deleted, refunded, fee payment) and balance
3. Conditional decrement (UPDATE ... WHERE balance >= amount)
4. Mark depleted when the balance reaches zero
5. Append an AdvanceAllocation row and an audit row

Methods flush but never commit: the caller owns the transaction.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    LedgerValidationError,
    EntryNotFoundError,
    InsufficientFundsError,
    InvalidStateTransitionError,
)
from backend.app.core.money import to_minor_units
from backend.app.domain.ledger.entry_store import AdvanceStore
from backend.app.models.advance import Advance
from backend.app.models.advance_allocation import AdvanceAllocation
from backend.app.models.ledger_enums import EntryKind, EntryStatus, AllocationSource
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("ledger")


@dataclass
class DeductionResult:
    """The entry after the deduction and the allocation recorded for it."""
    entry: Advance
    allocation: AdvanceAllocation


class DeductionEngine:

    @staticmethod
    def check_deductible(entry: Advance, amount_minor: int) -> None:
        """
        Raises:
            InvalidStateTransitionError: fee payment or refunded entry
            InsufficientFundsError: amount exceeds the remaining balance
        """
        if entry.kind.is_fee_payment:
            raise InvalidStateTransitionError(
                f"{entry.kind.value} entries do not hold a deductible balance",
                details={"advance_id": entry.id, "kind": entry.kind.value}
            )
        if entry.status == EntryStatus.REFUNDED:
            raise InvalidStateTransitionError(
                f"Advance {entry.id} was refunded",
                details={"advance_id": entry.id, "status": entry.status.value}
            )
        if amount_minor > entry.balance_remaining_minor:
            raise InsufficientFundsError(entry.id, amount_minor, entry.balance_remaining_minor)

    @staticmethod
    async def try_decrement(db: AsyncSession, entry_id: int, amount_minor: int) -> bool:
        """
        Decrement the balance only if the row still covers the amount.

        The check and the write are one statement, so two writers can never
        both spend the same funds.

        Returns:
            True if the row was updated
        """
        result = await db.execute(
            update(Advance)
            .where(
                Advance.id == entry_id,
                Advance.deleted_at.is_(None),
                Advance.status == EntryStatus.ACTIVE,
                Advance.balance_remaining_minor >= amount_minor,
            )
            .values(balance_remaining_minor=Advance.balance_remaining_minor - amount_minor)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        await db.execute(
            update(Advance)
            .where(
                Advance.id == entry_id,
                Advance.balance_remaining_minor == 0,
                Advance.status == EntryStatus.ACTIVE,
            )
            .values(status=EntryStatus.DEPLETED)
            .execution_options(synchronize_session=False)
        )
        return True

    @staticmethod
    async def deduct(
        db: AsyncSession,
        entry_id: int,
        amount: Decimal,
        currency: Optional[str] = None,
        source: AllocationSource = AllocationSource.MANUAL,
        expense_id: Optional[int] = None,
        actor: Optional[str] = None
    ) -> DeductionResult:
        """
        Deduct an amount from one advance.

        Args:
            db: Database session (transaction managed by caller)
            entry_id: Advance to deduct from
            amount: Positive amount in the advance's currency
            currency: If given, must equal the advance currency
            source: What consumed the funds
            expense_id: Expense paired with this deduction, if any

        Returns:
            DeductionResult with the refreshed entry

        Raises:
            LedgerValidationError, EntryNotFoundError,
            InvalidStateTransitionError, InsufficientFundsError
        """
        entry = await AdvanceStore.get(db, entry_id, for_update=True)

        if currency is not None and currency.upper() != entry.currency:
            raise LedgerValidationError(
                f"Advance {entry.id} is held in {entry.currency}, not {currency.upper()}",
                details={"advance_id": entry.id, "currency": entry.currency}
            )

        amount_minor = to_minor_units(amount, entry.currency)
        if amount_minor <= 0:
            raise LedgerValidationError("Deduction amount must be greater than zero", details={"field": "amount"})

        attempts = max(1, settings.deduct_retry_attempts)
        for attempt in range(1, attempts + 1):
            DeductionEngine.check_deductible(entry, amount_minor)
            if await DeductionEngine.try_decrement(db, entry.id, amount_minor):
                break
            logger.warning(
                "Advance changed during deduction, re-reading",
                extra={"advance_id": entry.id, "attempt": attempt, "amount_minor": amount_minor}
            )
            entry = await AdvanceStore.get(db, entry.id, for_update=True)
        else:
            DeductionEngine.check_deductible(entry, amount_minor)
            raise InvalidStateTransitionError(
                f"Advance {entry.id} is being modified concurrently, try again",
                details={"advance_id": entry.id}
            )

        allocation = AdvanceAllocation(
            advance_id=entry.id,
            expense_id=expense_id,
            amount_minor=amount_minor,
            source=source,
        )
        db.add(allocation)
        await db.flush()
        await db.refresh(allocation)
        await db.refresh(entry)

        await log_event(
            db,
            action=AuditAction.ADVANCE_DEDUCTED,
            entity_type="advance",
            entity_id=entry.id,
            actor=actor,
            metadata={
                "allocation_id": allocation.id,
                "amount_minor": amount_minor,
                "balance_remaining_minor": entry.balance_remaining_minor,
                "status": entry.status.value,
                "source": source.value,
                "expense_id": expense_id,
            }
        )
        logger.info(
            "Advance deducted",
            extra={
                "advance_id": entry.id,
                "amount_minor": amount_minor,
                "balance_remaining_minor": entry.balance_remaining_minor,
                "status": entry.status.value,
            }
        )
        return DeductionResult(entry=entry, allocation=allocation)

    @staticmethod
    async def _oldest_in_scope(
        db: AsyncSession,
        kind: EntryKind,
        status: EntryStatus,
        client_id: Optional[int] = None,
        matter_id: Optional[int] = None,
        lawyer_id: Optional[int] = None,
        currency: Optional[str] = None
    ) -> Optional[Advance]:
        base = select(Advance).where(
            Advance.kind == kind,
            Advance.status == status,
            Advance.deleted_at.is_(None),
        ).order_by(Advance.date_received.asc(), Advance.id.asc()).limit(1)

        if currency is not None:
            base = base.where(Advance.currency == currency.upper())

        if kind is EntryKind.LAWYER_ADVANCE:
            scopes = [base.where(Advance.lawyer_id == lawyer_id)]
        elif matter_id is not None:
            client_base = base.where(Advance.client_id == client_id)
            scopes = [
                client_base.where(Advance.matter_id == matter_id),
                client_base.where(Advance.matter_id.is_(None)),
            ]
        else:
            scopes = [base.where(Advance.client_id == client_id)]

        for stmt in scopes:
            result = await db.execute(stmt)
            entry = result.scalar_one_or_none()
            if entry is not None:
                return entry
        return None

    @staticmethod
    async def resolve_oldest_active(
        db: AsyncSession,
        kind: EntryKind,
        client_id: Optional[int] = None,
        matter_id: Optional[int] = None,
        lawyer_id: Optional[int] = None,
        currency: Optional[str] = None
    ) -> Optional[Advance]:
        """
        Pick the advance a selector-based deduction draws from.

        Oldest active entry first (date_received, then id). For a client with
        a matter, entries scoped to that matter win; the client's general
        (matter-less) entries are the fallback. Without a matter any of the
        client's entries qualify.
        """
        return await DeductionEngine._oldest_in_scope(
            db, kind, EntryStatus.ACTIVE,
            client_id=client_id, matter_id=matter_id, lawyer_id=lawyer_id, currency=currency
        )

    @staticmethod
    async def resolve_for_deduction(
        db: AsyncSession,
        kind: EntryKind,
        amount: Decimal,
        client_id: Optional[int] = None,
        matter_id: Optional[int] = None,
        lawyer_id: Optional[int] = None,
        currency: Optional[str] = None
    ) -> Advance:
        """
        Resolve the oldest active entry, or explain why there is none.

        A scope whose entries are all drawn down has no funds left rather
        than no fund at all.

        Raises:
            InsufficientFundsError: only depleted entries of that kind in scope
            EntryNotFoundError: no non-refunded entry of that kind in scope
        """
        scope = dict(client_id=client_id, matter_id=matter_id, lawyer_id=lawyer_id, currency=currency)
        entry = await DeductionEngine.resolve_oldest_active(db, kind, **scope)
        if entry is not None:
            return entry

        drained = await DeductionEngine._oldest_in_scope(db, kind, EntryStatus.DEPLETED, **scope)
        if drained is not None:
            amount_minor = to_minor_units(amount, drained.currency)
            if amount_minor <= 0:
                raise LedgerValidationError("Deduction amount must be greater than zero", details={"field": "amount"})
            raise InsufficientFundsError(drained.id, amount_minor, 0)

        owner = f"lawyer {lawyer_id}" if kind is EntryKind.LAWYER_ADVANCE else f"client {client_id}"
        in_currency = f" in {currency.upper()}" if currency else ""
        raise EntryNotFoundError(message=f"No active {kind.value}{in_currency} found for {owner}")

    @staticmethod
    async def deduct_retainer(
        db: AsyncSession,
        client_id: int,
        matter_id: Optional[int],
        kind: EntryKind,
        amount: Decimal,
        actor: Optional[str] = None
    ) -> DeductionResult:
        """
        Deduct from a client's prepaid fund chosen by selector.

        Never splits across entries: if the chosen (oldest) entry cannot
        cover the amount the deduction fails.

        Raises:
            LedgerValidationError: kind is not a client prepaid fund
            EntryNotFoundError: no entry of that kind in scope
            InsufficientFundsError: the chosen entry cannot cover the amount,
                or every entry in scope is depleted
        """
        if kind not in (EntryKind.CLIENT_RETAINER, EntryKind.CLIENT_EXPENSE_ADVANCE):
            raise LedgerValidationError(
                f"Cannot deduct a client fund of kind {kind.value}",
                details={"advance_type": kind.value}
            )

        entry = await DeductionEngine.resolve_for_deduction(
            db, kind, amount, client_id=client_id, matter_id=matter_id
        )

        return await DeductionEngine.deduct(
            db, entry.id, amount, source=AllocationSource.RETAINER, actor=actor
        )

    @staticmethod
    async def refund(db: AsyncSession, entry_id: int, actor: Optional[str] = None) -> Advance:
        """
        Mark an advance refunded. Terminal: no deduction is accepted afterwards.

        The remaining balance is left as it was.
        """
        entry = await AdvanceStore.get(db, entry_id, for_update=True)
        previous_status = entry.status

        entry.status = EntryStatus.REFUNDED
        await db.flush()
        await db.refresh(entry)

        await log_event(
            db,
            action=AuditAction.ADVANCE_REFUNDED,
            entity_type="advance",
            entity_id=entry.id,
            actor=actor,
            metadata={
                "previous_status": previous_status.value,
                "balance_remaining_minor": entry.balance_remaining_minor,
            }
        )
        logger.info("Advance refunded", extra={"advance_id": entry.id, "balance_remaining_minor": entry.balance_remaining_minor})
        return entry

    @staticmethod
    async def list_allocations(db: AsyncSession, entry_id: int) -> List[AdvanceAllocation]:
        """Deduction history of an advance, oldest first (deleted advances included)."""
        await AdvanceStore.get(db, entry_id, include_deleted=True)
        result = await db.execute(
            select(AdvanceAllocation)
            .where(AdvanceAllocation.advance_id == entry_id)
            .order_by(AdvanceAllocation.id.asc())
        )
        return result.scalars().all()
