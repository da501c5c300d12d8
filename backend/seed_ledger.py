"""
Database seeding script for a demo ledger.

Creates a retainer, an expense advance, a fee payment and a lawyer advance,
plus one expense charged against the advances, for testing and development.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import AsyncSessionLocal, Base, engine
from backend.app.domain.ledger.deduction_engine import DeductionEngine
from backend.app.domain.ledger.entry_store import AdvanceStore
from backend.app.domain.ledger.expense_bridge import ExpenseAdvanceBridge
from backend.app.models.advance import Advance
# Import models to ensure they are registered with Base
from backend.app.models.advance_allocation import AdvanceAllocation
from backend.app.models.audit_log import AuditLog
from backend.app.models.expense import Expense
from backend.app.models.ledger_enums import EntryKind
from backend.app.schemas.advance import AdvanceCreate
from backend.app.schemas.expense import ExpenseWithDeductionCreate

SEED_ACTOR = "seed"
SEED_REFERENCE_PREFIX = "SEED-"

SEED_ADVANCES = [
    AdvanceCreate(
        kind=EntryKind.CLIENT_RETAINER,
        client_id=1,
        matter_id=101,
        amount=Decimal("5000.00"),
        date_received=date(2024, 1, 8),
        payment_method="bank_transfer",
        reference_number="SEED-RET-001",
        minimum_balance_alert=Decimal("1000.00"),
    ),
    AdvanceCreate(
        kind=EntryKind.CLIENT_EXPENSE_ADVANCE,
        client_id=1,
        matter_id=101,
        amount=Decimal("800.00"),
        date_received=date(2024, 1, 8),
        payment_method="cheque",
        reference_number="SEED-EXP-001",
    ),
    AdvanceCreate(
        kind=EntryKind.FEE_PAYMENT_CONSULTATION,
        client_id=2,
        amount=Decimal("350.00"),
        date_received=date(2024, 1, 12),
        payment_method="cash",
        reference_number="SEED-FEE-001",
        fee_description="Initial consultation",
    ),
    AdvanceCreate(
        kind=EntryKind.LAWYER_ADVANCE,
        lawyer_id=1,
        amount=Decimal("600.00"),
        date_received=date(2024, 1, 15),
        payment_method="cash",
        reference_number="SEED-LAW-001",
    ),
]


async def seed_ledger(db: AsyncSession) -> int:
    """
    Seed the demo ledger.

    Skips everything when seed entries already exist.

    Returns:
        Number of advances created
    """
    result = await db.execute(
        select(Advance.id).where(Advance.reference_number.like(f"{SEED_REFERENCE_PREFIX}%")).limit(1)
    )
    if result.scalar_one_or_none() is not None:
        print("ℹ️  Seed advances already exist, skipping seeding")
        return 0

    created = {}
    for data in SEED_ADVANCES:
        entry = await AdvanceStore.create(db, data, actor=SEED_ACTOR)
        created[entry.kind] = entry
        print(f"✅ Created {entry.kind.value} #{entry.id} ({data.amount} {entry.currency})")

    await DeductionEngine.deduct(
        db, created[EntryKind.CLIENT_RETAINER].id, Decimal("1250.00"), actor=SEED_ACTOR
    )
    print("✅ Deducted 1250.00 from the retainer")
    await db.commit()

    await ExpenseAdvanceBridge.record_expense_with_deduction(db, ExpenseWithDeductionCreate(
        client_id=1,
        matter_id=101,
        paid_by_lawyer_id=1,
        amount=Decimal("145.50"),
        description="Court filing fees",
        date=date(2024, 1, 20),
    ), actor=SEED_ACTOR)
    print("✅ Recorded expense of 145.50 against the expense and lawyer advances")

    return len(created)


async def main():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting ledger seeding...")
        created = await seed_ledger(db)

    if created:
        print(f"\n🎉 Ledger seeding completed: {created} advances")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
