"""
Ledger Entry Store (Domain Logic).

Creates, reads, edits and soft-deletes advances.
Methods flush but never commit: the caller owns the transaction.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, List, Tuple

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import LedgerValidationError, EntryNotFoundError
from backend.app.core.money import to_minor_units
from backend.app.models.advance import Advance
from backend.app.models.advance_allocation import AdvanceAllocation
from backend.app.models.ledger_enums import EntryKind, EntryStatus
from backend.app.schemas.advance import AdvanceCreate, AdvanceUpdate
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("ledger")

# Fields an edit may change. Everything financial moves through deductions and refunds.
DESCRIPTIVE_FIELDS = ("date_received", "payment_method", "reference_number", "fee_description", "notes")


@dataclass
class EntryFilter:
    """Any combination of these narrows a listing."""
    client_id: Optional[int] = None
    matter_id: Optional[int] = None
    lawyer_id: Optional[int] = None
    kind: Optional[EntryKind] = None
    status: Optional[EntryStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    include_deleted: bool = False


def _audit_snapshot(entry: Advance) -> dict:
    return {
        "kind": entry.kind.value,
        "client_id": entry.client_id,
        "matter_id": entry.matter_id,
        "lawyer_id": entry.lawyer_id,
        "amount_minor": entry.amount_minor,
        "balance_remaining_minor": entry.balance_remaining_minor,
        "currency": entry.currency,
        "status": entry.status.value,
    }


class AdvanceStore:

    @staticmethod
    def validate_scoping(
        kind: EntryKind,
        client_id: Optional[int],
        matter_id: Optional[int],
        lawyer_id: Optional[int]
    ) -> None:
        """
        Check the scoping ids a kind requires.

        Lawyer advances belong to a lawyer only; every other kind belongs to a
        client and may be narrowed to one of its matters.
        """
        if kind is EntryKind.LAWYER_ADVANCE:
            if lawyer_id is None:
                raise LedgerValidationError("lawyer_id is required for a lawyer advance", details={"field": "lawyer_id"})
            if client_id is not None or matter_id is not None:
                raise LedgerValidationError(
                    "A lawyer advance cannot be scoped to a client or matter",
                    details={"field": "client_id" if client_id is not None else "matter_id"}
                )
            return

        if client_id is None:
            raise LedgerValidationError(f"client_id is required for {kind.value}", details={"field": "client_id"})

    @staticmethod
    async def create(db: AsyncSession, data: AdvanceCreate, actor: Optional[str] = None) -> Advance:
        """
        Record received funds.

        Balance-tracked kinds start with their full amount available;
        fee payments carry no balance.

        Raises:
            LedgerValidationError: scoping ids do not match the kind, or the
                amount does not fit the currency.
        """
        AdvanceStore.validate_scoping(data.kind, data.client_id, data.matter_id, data.lawyer_id)

        amount_minor = to_minor_units(data.amount, data.currency)
        if amount_minor <= 0:
            raise LedgerValidationError("Amount must be greater than zero", details={"field": "amount"})

        minimum_alert_minor = None
        if data.minimum_balance_alert is not None:
            if data.kind.is_fee_payment:
                raise LedgerValidationError(
                    "Fee payments do not track a balance",
                    details={"field": "minimum_balance_alert"}
                )
            minimum_alert_minor = to_minor_units(data.minimum_balance_alert, data.currency)

        entry = Advance(
            kind=data.kind,
            client_id=data.client_id,
            matter_id=data.matter_id,
            lawyer_id=data.lawyer_id,
            amount_minor=amount_minor,
            currency=data.currency,
            balance_remaining_minor=amount_minor if data.kind.is_balance_tracked else 0,
            minimum_balance_alert_minor=minimum_alert_minor,
            status=EntryStatus.ACTIVE,
            date_received=data.date_received,
            payment_method=data.payment_method,
            reference_number=data.reference_number,
            fee_description=data.fee_description,
            notes=data.notes,
        )
        db.add(entry)
        await db.flush()
        await db.refresh(entry)

        await log_event(
            db,
            action=AuditAction.ADVANCE_CREATED,
            entity_type="advance",
            entity_id=entry.id,
            actor=actor,
            metadata=_audit_snapshot(entry)
        )
        logger.info(
            "Advance created",
            extra={"advance_id": entry.id, "kind": entry.kind.value, "amount_minor": amount_minor, "currency": entry.currency}
        )
        return entry

    @staticmethod
    async def get(
        db: AsyncSession,
        entry_id: int,
        for_update: bool = False,
        include_deleted: bool = False
    ) -> Advance:
        """
        Load an advance, always re-reading the row.

        Args:
            for_update: lock the row until the transaction ends (ignored by SQLite)
            include_deleted: also return soft-deleted advances

        Raises:
            EntryNotFoundError: absent, or soft-deleted and not requested
        """
        stmt = select(Advance).where(Advance.id == entry_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()

        result = await db.execute(stmt)
        entry = result.scalar_one_or_none()

        if entry is None or (entry.is_deleted and not include_deleted):
            raise EntryNotFoundError(entry_id)
        return entry

    @staticmethod
    async def update(db: AsyncSession, entry_id: int, patch: AdvanceUpdate, actor: Optional[str] = None) -> Advance:
        """
        Edit descriptive fields of an advance.

        Immutable fields may be present only with their current value.

        Raises:
            EntryNotFoundError: absent or soft-deleted
            LedgerValidationError: the patch changes an immutable field,
                the balance or the status
        """
        entry = await AdvanceStore.get(db, entry_id, for_update=True)
        changes = patch.model_dump(exclude_unset=True)

        rejected = []
        for field in ("kind", "client_id", "matter_id", "lawyer_id"):
            if field in changes and changes[field] != getattr(entry, field):
                rejected.append(field)
        if "currency" in changes and (changes["currency"] or "").upper() != entry.currency:
            rejected.append("currency")
        if "amount" in changes and (
            changes["amount"] is None or to_minor_units(changes["amount"], entry.currency) != entry.amount_minor
        ):
            rejected.append("amount")
        if rejected:
            raise LedgerValidationError(
                f"Cannot change immutable fields: {', '.join(rejected)}",
                details={"fields": rejected}
            )

        if "balance_remaining" in changes and (
            changes["balance_remaining"] is None
            or to_minor_units(changes["balance_remaining"], entry.currency) != entry.balance_remaining_minor
        ):
            raise LedgerValidationError(
                "Balance changes only through deductions",
                details={"fields": ["balance_remaining"]}
            )
        if "status" in changes and changes["status"] != entry.status:
            raise LedgerValidationError(
                "Status changes only through deductions and refunds",
                details={"fields": ["status"]}
            )

        if "date_received" in changes and changes["date_received"] is None:
            raise LedgerValidationError("date_received cannot be cleared", details={"field": "date_received"})

        updated = []
        for field in DESCRIPTIVE_FIELDS:
            if field in changes and changes[field] != getattr(entry, field):
                setattr(entry, field, changes[field])
                updated.append(field)

        if "minimum_balance_alert" in changes:
            alert = changes["minimum_balance_alert"]
            if alert is not None and entry.kind.is_fee_payment:
                raise LedgerValidationError(
                    "Fee payments do not track a balance",
                    details={"field": "minimum_balance_alert"}
                )
            alert_minor = None if alert is None else to_minor_units(alert, entry.currency)
            if alert_minor != entry.minimum_balance_alert_minor:
                entry.minimum_balance_alert_minor = alert_minor
                updated.append("minimum_balance_alert")

        if not updated:
            return entry

        await db.flush()
        await db.refresh(entry)

        await log_event(
            db,
            action=AuditAction.ADVANCE_UPDATED,
            entity_type="advance",
            entity_id=entry.id,
            actor=actor,
            metadata={"fields": updated}
        )
        logger.info("Advance updated", extra={"advance_id": entry.id, "fields": updated})
        return entry

    @staticmethod
    async def soft_delete(db: AsyncSession, entry_id: int, actor: Optional[str] = None) -> Advance:
        """Move an advance to the trash. Past deductions stand."""
        entry = await AdvanceStore.get(db, entry_id, for_update=True)
        entry.deleted_at = datetime.now(timezone.utc)
        await db.flush()
        await db.refresh(entry)

        await log_event(
            db,
            action=AuditAction.ADVANCE_DELETED,
            entity_type="advance",
            entity_id=entry.id,
            actor=actor,
            metadata=_audit_snapshot(entry)
        )
        logger.info("Advance soft-deleted", extra={"advance_id": entry.id})
        return entry

    @staticmethod
    async def restore(db: AsyncSession, entry_id: int, actor: Optional[str] = None) -> Advance:
        """Bring a soft-deleted advance back from the trash."""
        entry = await AdvanceStore.get(db, entry_id, for_update=True, include_deleted=True)
        if not entry.is_deleted:
            raise LedgerValidationError(f"Advance {entry_id} is not deleted", details={"advance_id": entry_id})

        entry.deleted_at = None
        await db.flush()
        await db.refresh(entry)

        await log_event(
            db,
            action=AuditAction.ADVANCE_RESTORED,
            entity_type="advance",
            entity_id=entry.id,
            actor=actor
        )
        logger.info("Advance restored", extra={"advance_id": entry.id})
        return entry

    @staticmethod
    async def purge(db: AsyncSession, entry_id: int, actor: Optional[str] = None) -> None:
        """
        Permanently remove a soft-deleted advance and its allocations.

        Raises:
            LedgerValidationError: the advance was not soft-deleted first
        """
        entry = await AdvanceStore.get(db, entry_id, include_deleted=True)
        if not entry.is_deleted:
            raise LedgerValidationError(
                "Only deleted advances can be purged",
                details={"advance_id": entry_id}
            )

        snapshot = _audit_snapshot(entry)
        await db.execute(delete(AdvanceAllocation).where(AdvanceAllocation.advance_id == entry_id))
        await db.execute(delete(Advance).where(Advance.id == entry_id))
        db.expunge(entry)

        await log_event(
            db,
            action=AuditAction.ADVANCE_PURGED,
            entity_type="advance",
            entity_id=entry_id,
            actor=actor,
            metadata=snapshot
        )
        logger.info("Advance purged", extra={"advance_id": entry_id})

    @staticmethod
    async def list_entries(
        db: AsyncSession,
        entry_filter: Optional[EntryFilter] = None,
        page: int = 1,
        page_size: int = 50
    ) -> Tuple[List[Advance], int]:
        """
        List advances matching a filter, newest first.

        Returns:
            (page of advances, total matching)
        """
        entry_filter = entry_filter or EntryFilter()
        conditions = []

        if not entry_filter.include_deleted:
            conditions.append(Advance.deleted_at.is_(None))
        if entry_filter.client_id is not None:
            conditions.append(Advance.client_id == entry_filter.client_id)
        if entry_filter.matter_id is not None:
            conditions.append(Advance.matter_id == entry_filter.matter_id)
        if entry_filter.lawyer_id is not None:
            conditions.append(Advance.lawyer_id == entry_filter.lawyer_id)
        if entry_filter.kind is not None:
            conditions.append(Advance.kind == entry_filter.kind)
        if entry_filter.status is not None:
            conditions.append(Advance.status == entry_filter.status)
        if entry_filter.date_from is not None:
            conditions.append(Advance.date_received >= entry_filter.date_from)
        if entry_filter.date_to is not None:
            conditions.append(Advance.date_received <= entry_filter.date_to)

        total_result = await db.execute(select(func.count(Advance.id)).where(*conditions))
        total = total_result.scalar()

        offset = (page - 1) * page_size
        query = select(Advance).where(*conditions).order_by(
            Advance.date_received.desc(), Advance.id.desc()
        ).offset(offset).limit(page_size)

        result = await db.execute(query)
        return result.scalars().all(), total

    @staticmethod
    async def list_deleted(db: AsyncSession) -> List[Advance]:
        """Advances in the trash, most recently deleted first."""
        result = await db.execute(
            select(Advance).where(Advance.deleted_at.is_not(None)).order_by(Advance.deleted_at.desc(), Advance.id.desc())
        )
        return result.scalars().all()
