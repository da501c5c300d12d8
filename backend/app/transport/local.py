"""
In-process ledger transport.

Each call runs in its own session: committed when the call succeeds,
rolled back when it raises.
"""

from decimal import Decimal
from typing import Optional

from backend.app.db.session import session_scope
from backend.app.domain.ledger.balance_aggregator import BalanceAggregator
from backend.app.domain.ledger.deduction_engine import DeductionEngine
from backend.app.domain.ledger.entry_store import AdvanceStore, EntryFilter
from backend.app.domain.ledger.expense_bridge import ExpenseAdvanceBridge
from backend.app.domain.ledger.lawyer_reimbursement import LawyerReimbursementCalculator
from backend.app.models.ledger_enums import EntryKind
from backend.app.schemas.advance import (
    AdvanceCreate, AdvanceUpdate, AdvanceResponse, AdvanceListResponse,
    DeductionResponse, BalanceResponse, LawyerBalanceResponse,
)
from backend.app.schemas.expense import ExpenseWithDeductionCreate, ExpenseWithDeductionResponse, ExpenseResponse
from backend.app.transport.base import LedgerTransport


class LocalLedgerTransport(LedgerTransport):

    def __init__(self, session_factory=None):
        """
        Args:
            session_factory: async_sessionmaker to open sessions from
                (defaults to the application's AsyncSessionLocal)
        """
        self._session_factory = session_factory

    def _session(self):
        return session_scope(self._session_factory)

    async def add_advance(self, data: AdvanceCreate, actor: Optional[str] = None) -> AdvanceResponse:
        async with self._session() as db:
            entry = await AdvanceStore.create(db, data, actor=actor)
            return AdvanceResponse.model_validate(entry)

    async def update_advance(self, advance_id: int, data: AdvanceUpdate, actor: Optional[str] = None) -> AdvanceResponse:
        async with self._session() as db:
            entry = await AdvanceStore.update(db, advance_id, data, actor=actor)
            return AdvanceResponse.model_validate(entry)

    async def delete_advance(self, advance_id: int, actor: Optional[str] = None) -> AdvanceResponse:
        async with self._session() as db:
            entry = await AdvanceStore.soft_delete(db, advance_id, actor=actor)
            return AdvanceResponse.model_validate(entry)

    async def refund_advance(self, advance_id: int, actor: Optional[str] = None) -> AdvanceResponse:
        async with self._session() as db:
            entry = await DeductionEngine.refund(db, advance_id, actor=actor)
            return AdvanceResponse.model_validate(entry)

    async def get_advance(self, advance_id: int) -> AdvanceResponse:
        async with self._session() as db:
            entry = await AdvanceStore.get(db, advance_id)
            return AdvanceResponse.model_validate(entry)

    async def list_advances(
        self,
        entry_filter: Optional[EntryFilter] = None,
        page: int = 1,
        page_size: int = 50
    ) -> AdvanceListResponse:
        async with self._session() as db:
            entries, total = await AdvanceStore.list_entries(db, entry_filter, page=page, page_size=page_size)
            return AdvanceListResponse(
                advances=[AdvanceResponse.model_validate(entry) for entry in entries],
                total=total,
                page=page,
                page_size=page_size
            )

    async def deduct_from_advance(
        self,
        advance_id: int,
        amount: Decimal,
        currency: Optional[str] = None,
        actor: Optional[str] = None
    ) -> DeductionResponse:
        async with self._session() as db:
            result = await DeductionEngine.deduct(db, advance_id, amount, currency=currency, actor=actor)
            return DeductionResponse.from_result(result)

    async def deduct_retainer(
        self,
        client_id: int,
        matter_id: Optional[int],
        amount: Decimal,
        advance_type: EntryKind = EntryKind.CLIENT_RETAINER,
        actor: Optional[str] = None
    ) -> DeductionResponse:
        async with self._session() as db:
            result = await DeductionEngine.deduct_retainer(db, client_id, matter_id, advance_type, amount, actor=actor)
            return DeductionResponse.from_result(result)

    async def add_expense_with_deduction(
        self,
        data: ExpenseWithDeductionCreate,
        actor: Optional[str] = None
    ) -> ExpenseWithDeductionResponse:
        async with self._session() as db:
            result = await ExpenseAdvanceBridge.record_expense_with_deduction(db, data, actor=actor)
            return ExpenseWithDeductionResponse(
                expense=ExpenseResponse.model_validate(result.expense),
                deductions=[DeductionResponse.from_result(deduction) for deduction in result.deductions]
            )

    async def get_client_expense_advance(self, client_id: int, matter_id: Optional[int] = None) -> BalanceResponse:
        async with self._session() as db:
            summary = await BalanceAggregator.get_client_expense_advance(db, client_id, matter_id)
            return BalanceResponse.from_summary(summary)

    async def get_client_retainer(self, client_id: int, matter_id: Optional[int] = None) -> BalanceResponse:
        async with self._session() as db:
            summary = await BalanceAggregator.get_client_retainer(db, client_id, matter_id)
            return BalanceResponse.from_summary(summary)

    async def get_lawyer_advance(self, lawyer_id: int) -> BalanceResponse:
        async with self._session() as db:
            summary = await BalanceAggregator.get_lawyer_advance(db, lawyer_id)
            return BalanceResponse.from_summary(summary)

    async def compute_lawyer_balance(self, lawyer_id: int, currency: Optional[str] = None) -> LawyerBalanceResponse:
        async with self._session() as db:
            balance = await LawyerReimbursementCalculator.compute_lawyer_balance(db, lawyer_id, currency)
            return LawyerBalanceResponse(**balance.as_dict())
