"""
Ledger transport interface.

Callers outside the REST layer (desktop shell, scripts, other services) talk
to the ledger through a LedgerTransport. Every implementation accepts the
request schemas, returns the response schemas and raises the same
AppException subclasses, so callers cannot tell which one they hold.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from backend.app.domain.ledger.entry_store import EntryFilter
from backend.app.models.ledger_enums import EntryKind
from backend.app.schemas.advance import (
    AdvanceCreate, AdvanceUpdate, AdvanceResponse, AdvanceListResponse,
    DeductionResponse, BalanceResponse, LawyerBalanceResponse,
)
from backend.app.schemas.expense import ExpenseWithDeductionCreate, ExpenseWithDeductionResponse


class LedgerTransport(ABC):

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self) -> None:
        """Release connections held by the transport."""

    # Entries

    @abstractmethod
    async def add_advance(self, data: AdvanceCreate, actor: Optional[str] = None) -> AdvanceResponse:
        ...

    @abstractmethod
    async def update_advance(self, advance_id: int, data: AdvanceUpdate, actor: Optional[str] = None) -> AdvanceResponse:
        ...

    @abstractmethod
    async def delete_advance(self, advance_id: int, actor: Optional[str] = None) -> AdvanceResponse:
        ...

    @abstractmethod
    async def refund_advance(self, advance_id: int, actor: Optional[str] = None) -> AdvanceResponse:
        ...

    @abstractmethod
    async def get_advance(self, advance_id: int) -> AdvanceResponse:
        ...

    @abstractmethod
    async def list_advances(
        self,
        entry_filter: Optional[EntryFilter] = None,
        page: int = 1,
        page_size: int = 50
    ) -> AdvanceListResponse:
        ...

    # Deductions

    @abstractmethod
    async def deduct_from_advance(
        self,
        advance_id: int,
        amount: Decimal,
        currency: Optional[str] = None,
        actor: Optional[str] = None
    ) -> DeductionResponse:
        ...

    @abstractmethod
    async def deduct_retainer(
        self,
        client_id: int,
        matter_id: Optional[int],
        amount: Decimal,
        advance_type: EntryKind = EntryKind.CLIENT_RETAINER,
        actor: Optional[str] = None
    ) -> DeductionResponse:
        ...

    @abstractmethod
    async def add_expense_with_deduction(
        self,
        data: ExpenseWithDeductionCreate,
        actor: Optional[str] = None
    ) -> ExpenseWithDeductionResponse:
        ...

    # Balances

    @abstractmethod
    async def get_client_expense_advance(self, client_id: int, matter_id: Optional[int] = None) -> BalanceResponse:
        ...

    @abstractmethod
    async def get_client_retainer(self, client_id: int, matter_id: Optional[int] = None) -> BalanceResponse:
        ...

    @abstractmethod
    async def get_lawyer_advance(self, lawyer_id: int) -> BalanceResponse:
        ...

    @abstractmethod
    async def compute_lawyer_balance(self, lawyer_id: int, currency: Optional[str] = None) -> LawyerBalanceResponse:
        ...
