"""
Advances API Endpoints.

Networked surface of the advance & retainer ledger: receiving funds,
balances, deductions, refunds and the expense-with-deduction workflow.
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_actor
from backend.app.db.session import get_db
from backend.app.domain.ledger.balance_aggregator import BalanceAggregator
from backend.app.domain.ledger.deduction_engine import DeductionEngine
from backend.app.domain.ledger.entry_store import AdvanceStore, EntryFilter
from backend.app.domain.ledger.expense_bridge import ExpenseAdvanceBridge
from backend.app.domain.ledger.lawyer_reimbursement import LawyerReimbursementCalculator
from backend.app.models.ledger_enums import EntryKind, EntryStatus
from backend.app.schemas.advance import (
    AdvanceCreate, AdvanceUpdate, AdvanceResponse, AdvanceListResponse,
    AllocationResponse, AuditEntryResponse, DeductRequest, DeductRetainerRequest, DeductionResponse,
    BalanceResponse, LedgerTotalsResponse, LawyerBalanceResponse, LawyerBalanceListResponse,
)
from backend.app.schemas.expense import ExpenseWithDeductionCreate, ExpenseWithDeductionResponse, ExpenseResponse
from backend.app.services.audit import get_audit_trail

router = APIRouter(prefix="/advances", tags=["Advances"])


# Read-only balance queries

@router.get("/client-retainer", response_model=BalanceResponse)
async def get_client_retainer(
    client_id: int = Query(..., gt=0),
    matter_id: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db)
):
    """
    Available retainer balance for a client (one matter, or all matters).
    """
    summary = await BalanceAggregator.get_client_retainer(db, client_id, matter_id)
    return BalanceResponse.from_summary(summary)


@router.get("/client-expense-advance", response_model=BalanceResponse)
async def get_client_expense_advance(
    client_id: int = Query(..., gt=0),
    matter_id: Optional[int] = Query(None, gt=0),
    db: AsyncSession = Depends(get_db)
):
    """
    Available expense advance balance for a client (one matter, or all matters).
    """
    summary = await BalanceAggregator.get_client_expense_advance(db, client_id, matter_id)
    return BalanceResponse.from_summary(summary)


@router.get("/lawyer-advance", response_model=BalanceResponse)
async def get_lawyer_advance(
    lawyer_id: int = Query(..., gt=0),
    db: AsyncSession = Depends(get_db)
):
    """
    Firm cash a lawyer still holds from lawyer advances.
    """
    summary = await BalanceAggregator.get_lawyer_advance(db, lawyer_id)
    return BalanceResponse.from_summary(summary)


@router.get("/summary", response_model=LedgerTotalsResponse)
async def get_ledger_summary(db: AsyncSession = Depends(get_db)):
    """
    Totals received per kind group and currency.
    """
    totals = await BalanceAggregator.ledger_totals(db)
    return LedgerTotalsResponse.from_totals(totals)


@router.get("/low-balance", response_model=list[AdvanceResponse])
async def list_low_balance_advances(db: AsyncSession = Depends(get_db)):
    """
    Active advances whose balance fell under their minimum.
    """
    entries = await BalanceAggregator.low_balance_entries(db)
    return [AdvanceResponse.model_validate(entry) for entry in entries]


@router.get("/lawyer-balances", response_model=LawyerBalanceListResponse)
async def list_lawyer_balances(
    currency: Optional[str] = Query(None, pattern=r"^[A-Z]{3}$"),
    db: AsyncSession = Depends(get_db)
):
    """
    Reconciled balance of every lawyer with advances or paid expenses.
    """
    balances = await LawyerReimbursementCalculator.compute_all_lawyer_balances(db, currency)
    return LawyerBalanceListResponse(
        balances=[LawyerBalanceResponse(**balance.as_dict()) for balance in balances]
    )


@router.get("/lawyer-balances/{lawyer_id}", response_model=LawyerBalanceResponse)
async def get_lawyer_balance(
    lawyer_id: int,
    currency: Optional[str] = Query(None, pattern=r"^[A-Z]{3}$"),
    db: AsyncSession = Depends(get_db)
):
    """
    Reconciled balance of one lawyer: negative means the firm owes the lawyer.
    """
    balance = await LawyerReimbursementCalculator.compute_lawyer_balance(db, lawyer_id, currency)
    return LawyerBalanceResponse(**balance.as_dict())


@router.get("/trash", response_model=list[AdvanceResponse])
async def list_deleted_advances(db: AsyncSession = Depends(get_db)):
    """
    Soft-deleted advances awaiting restore or purge.
    """
    entries = await AdvanceStore.list_deleted(db)
    return [AdvanceResponse.model_validate(entry) for entry in entries]


# Deductions

@router.post("/allocate", response_model=DeductionResponse)
async def allocate_from_advance(
    request: DeductRequest,
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Deduct an amount from one advance by id.

    Fails without side effects when the balance cannot cover the amount.
    """
    result = await DeductionEngine.deduct(
        db, request.advance_id, request.amount, currency=request.currency, actor=actor
    )
    response = DeductionResponse.from_result(result)
    await db.commit()
    return response


@router.post("/deduct-retainer", response_model=DeductionResponse)
async def deduct_retainer(
    request: DeductRetainerRequest,
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Deduct from the client's oldest active fund of the given type.
    """
    result = await DeductionEngine.deduct_retainer(
        db, request.client_id, request.matter_id, request.advance_type, request.amount, actor=actor
    )
    response = DeductionResponse.from_result(result)
    await db.commit()
    return response


@router.post(
    "/expense-with-deduction",
    response_model=ExpenseWithDeductionResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_expense_with_deduction(
    request: ExpenseWithDeductionCreate,
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Record an expense and deduct it from the matching advances atomically.
    """
    result = await ExpenseAdvanceBridge.record_expense_with_deduction(db, request, actor=actor)
    return ExpenseWithDeductionResponse(
        expense=ExpenseResponse.model_validate(result.expense),
        deductions=[DeductionResponse.from_result(deduction) for deduction in result.deductions]
    )


# Entry CRUD

@router.get("", response_model=AdvanceListResponse)
async def list_advances(
    client_id: Optional[int] = Query(None, gt=0),
    matter_id: Optional[int] = Query(None, gt=0),
    lawyer_id: Optional[int] = Query(None, gt=0),
    kind: Optional[EntryKind] = Query(None),
    status_filter: Optional[EntryStatus] = Query(None, alias="status"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    include_deleted: bool = Query(False),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    db: AsyncSession = Depends(get_db)
):
    """
    List advances, newest first. Soft-deleted rows are hidden unless requested.
    """
    entry_filter = EntryFilter(
        client_id=client_id,
        matter_id=matter_id,
        lawyer_id=lawyer_id,
        kind=kind,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
        include_deleted=include_deleted,
    )
    entries, total = await AdvanceStore.list_entries(db, entry_filter, page=page, page_size=page_size)

    return AdvanceListResponse(
        advances=[AdvanceResponse.model_validate(entry) for entry in entries],
        total=total,
        page=page,
        page_size=page_size
    )


@router.post("", response_model=AdvanceResponse, status_code=status.HTTP_201_CREATED)
async def add_advance(
    advance_data: AdvanceCreate,
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Record received funds: retainer, expense advance, lawyer advance or fee payment.
    """
    entry = await AdvanceStore.create(db, advance_data, actor=actor)
    response = AdvanceResponse.model_validate(entry)
    await db.commit()
    return response


@router.get("/{advance_id}", response_model=AdvanceResponse)
async def get_advance(advance_id: int, db: AsyncSession = Depends(get_db)):
    """
    Get one advance.
    """
    entry = await AdvanceStore.get(db, advance_id)
    return AdvanceResponse.model_validate(entry)


@router.put("/{advance_id}", response_model=AdvanceResponse)
async def update_advance(
    advance_id: int,
    advance_data: AdvanceUpdate,
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit descriptive fields. Financial and scoping fields cannot change.
    """
    entry = await AdvanceStore.update(db, advance_id, advance_data, actor=actor)
    response = AdvanceResponse.model_validate(entry)
    await db.commit()
    return response


@router.delete("/{advance_id}", response_model=AdvanceResponse)
async def delete_advance(
    advance_id: int,
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Soft-delete an advance. Historical deductions are kept.
    """
    entry = await AdvanceStore.soft_delete(db, advance_id, actor=actor)
    response = AdvanceResponse.model_validate(entry)
    await db.commit()
    return response


@router.post("/{advance_id}/refund", response_model=AdvanceResponse)
async def refund_advance(
    advance_id: int,
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Mark an advance refunded. No further deductions are accepted.
    """
    entry = await DeductionEngine.refund(db, advance_id, actor=actor)
    response = AdvanceResponse.model_validate(entry)
    await db.commit()
    return response


@router.get("/{advance_id}/allocations", response_model=list[AllocationResponse])
async def list_advance_allocations(advance_id: int, db: AsyncSession = Depends(get_db)):
    """
    Deduction history of an advance, oldest first.
    """
    entry = await AdvanceStore.get(db, advance_id, include_deleted=True)
    allocations = await DeductionEngine.list_allocations(db, advance_id)
    return [AllocationResponse.from_allocation(allocation, entry.currency) for allocation in allocations]


@router.get("/{advance_id}/audit", response_model=list[AuditEntryResponse])
async def list_advance_audit_trail(
    advance_id: int,
    action: Optional[str] = Query(None, max_length=100),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    """
    Audit trail of an advance, most recent first.
    """
    await AdvanceStore.get(db, advance_id, include_deleted=True)
    trail = await get_audit_trail(db, entity_type="advance", entity_id=advance_id, action=action, limit=limit)
    return [AuditEntryResponse.from_audit_log(audit_log) for audit_log in trail]


@router.post("/{advance_id}/restore", response_model=AdvanceResponse)
async def restore_advance(
    advance_id: int,
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Restore a soft-deleted advance.
    """
    entry = await AdvanceStore.restore(db, advance_id, actor=actor)
    response = AdvanceResponse.model_validate(entry)
    await db.commit()
    return response


@router.delete("/{advance_id}/purge", status_code=status.HTTP_204_NO_CONTENT)
async def purge_advance(
    advance_id: int,
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Permanently remove a soft-deleted advance and its allocations.
    """
    await AdvanceStore.purge(db, advance_id, actor=actor)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
