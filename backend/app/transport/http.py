"""
HTTP ledger transport.

Calls the REST surface with httpx and turns error payloads back into the
exception classes the in-process transport raises.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import AppException, LedgerValidationError, LEDGER_ERRORS_BY_CODE
from backend.app.core.reliability import CircuitBreaker
from backend.app.domain.ledger.entry_store import EntryFilter
from backend.app.models.ledger_enums import EntryKind
from backend.app.schemas.advance import (
    AdvanceCreate, AdvanceUpdate, AdvanceResponse, AdvanceListResponse,
    DeductionResponse, BalanceResponse, LawyerBalanceResponse,
)
from backend.app.schemas.expense import ExpenseWithDeductionCreate, ExpenseWithDeductionResponse
from backend.app.transport.base import LedgerTransport

logger = logging.getLogger("ledger.http")

# Request-schema violations caught by the server are ledger validation errors too
ERROR_CLASSES = {**LEDGER_ERRORS_BY_CODE, "ERR_VALIDATION": LedgerValidationError}


def error_from_response(response: httpx.Response) -> AppException:
    """
    Rebuild the exception behind an error response.

    Message, error_code, status and details are copied from the payload;
    unknown codes become a plain AppException.
    """
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    error_code = payload.get("error_code", "ERR_UNKNOWN")
    message = payload.get("message") or response.reason_phrase or "Ledger request failed"
    details = payload.get("details") or {}

    exc_class = ERROR_CLASSES.get(error_code, AppException)
    exc = exc_class.__new__(exc_class)
    AppException.__init__(exc, message, error_code, response.status_code, details)
    return exc


def _filter_params(entry_filter: Optional[EntryFilter]) -> Dict[str, Any]:
    if entry_filter is None:
        return {}

    params = {
        "client_id": entry_filter.client_id,
        "matter_id": entry_filter.matter_id,
        "lawyer_id": entry_filter.lawyer_id,
        "kind": entry_filter.kind.value if entry_filter.kind else None,
        "status": entry_filter.status.value if entry_filter.status else None,
        "date_from": entry_filter.date_from.isoformat() if entry_filter.date_from else None,
        "date_to": entry_filter.date_to.isoformat() if entry_filter.date_to else None,
        "include_deleted": "true" if entry_filter.include_deleted else None,
    }
    return {key: value for key, value in params.items() if value is not None}


class HttpLedgerTransport(LedgerTransport):

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None
    ):
        """
        Args:
            base_url: API root including the version prefix, e.g. http://host:8000/v1
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests pass one bound to an ASGI app);
                the transport does not close a client it did not create
            breaker: Circuit breaker guarding connection failures
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.ledger_api_url,
            timeout=timeout if timeout is not None else settings.ledger_api_timeout,
        )
        self._breaker = breaker or CircuitBreaker(
            failure_threshold=settings.ledger_api_failure_threshold,
            reset_timeout=settings.ledger_api_reset_timeout,
            tracked_exceptions=(httpx.TransportError,),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        actor: Optional[str] = None
    ) -> Any:
        headers = {"X-Actor": actor} if actor else None
        try:
            response = await self._breaker.call(
                self._client.request, method, path, json=json, params=params, headers=headers
            )
        except httpx.TransportError as exc:
            logger.error("Ledger service unreachable", extra={"method": method, "path": path})
            raise AppException(
                message="Ledger service unreachable",
                error_code="ERR_LEDGER_UNAVAILABLE",
                status_code=503,
                details={"reason": type(exc).__name__}
            ) from exc

        if response.is_error:
            raise error_from_response(response)
        if response.status_code == 204:
            return None
        return response.json()

    async def add_advance(self, data: AdvanceCreate, actor: Optional[str] = None) -> AdvanceResponse:
        payload = await self._request("POST", "/advances", json=data.model_dump(mode="json"), actor=actor)
        return AdvanceResponse.model_validate(payload)

    async def update_advance(self, advance_id: int, data: AdvanceUpdate, actor: Optional[str] = None) -> AdvanceResponse:
        payload = await self._request(
            "PUT", f"/advances/{advance_id}", json=data.model_dump(mode="json", exclude_unset=True), actor=actor
        )
        return AdvanceResponse.model_validate(payload)

    async def delete_advance(self, advance_id: int, actor: Optional[str] = None) -> AdvanceResponse:
        payload = await self._request("DELETE", f"/advances/{advance_id}", actor=actor)
        return AdvanceResponse.model_validate(payload)

    async def refund_advance(self, advance_id: int, actor: Optional[str] = None) -> AdvanceResponse:
        payload = await self._request("POST", f"/advances/{advance_id}/refund", actor=actor)
        return AdvanceResponse.model_validate(payload)

    async def get_advance(self, advance_id: int) -> AdvanceResponse:
        payload = await self._request("GET", f"/advances/{advance_id}")
        return AdvanceResponse.model_validate(payload)

    async def list_advances(
        self,
        entry_filter: Optional[EntryFilter] = None,
        page: int = 1,
        page_size: int = 50
    ) -> AdvanceListResponse:
        params = {**_filter_params(entry_filter), "page": page, "page_size": page_size}
        payload = await self._request("GET", "/advances", params=params)
        return AdvanceListResponse.model_validate(payload)

    async def deduct_from_advance(
        self,
        advance_id: int,
        amount: Decimal,
        currency: Optional[str] = None,
        actor: Optional[str] = None
    ) -> DeductionResponse:
        body = {"advance_id": advance_id, "amount": str(amount), "currency": currency}
        payload = await self._request("POST", "/advances/allocate", json=body, actor=actor)
        return DeductionResponse.model_validate(payload)

    async def deduct_retainer(
        self,
        client_id: int,
        matter_id: Optional[int],
        amount: Decimal,
        advance_type: EntryKind = EntryKind.CLIENT_RETAINER,
        actor: Optional[str] = None
    ) -> DeductionResponse:
        body = {
            "client_id": client_id,
            "matter_id": matter_id,
            "advance_type": EntryKind(advance_type).value,
            "amount": str(amount),
        }
        payload = await self._request("POST", "/advances/deduct-retainer", json=body, actor=actor)
        return DeductionResponse.model_validate(payload)

    async def add_expense_with_deduction(
        self,
        data: ExpenseWithDeductionCreate,
        actor: Optional[str] = None
    ) -> ExpenseWithDeductionResponse:
        payload = await self._request(
            "POST", "/advances/expense-with-deduction", json=data.model_dump(mode="json"), actor=actor
        )
        return ExpenseWithDeductionResponse.model_validate(payload)

    async def get_client_expense_advance(self, client_id: int, matter_id: Optional[int] = None) -> BalanceResponse:
        params = {"client_id": client_id}
        if matter_id is not None:
            params["matter_id"] = matter_id
        payload = await self._request("GET", "/advances/client-expense-advance", params=params)
        return BalanceResponse.model_validate(payload)

    async def get_client_retainer(self, client_id: int, matter_id: Optional[int] = None) -> BalanceResponse:
        params = {"client_id": client_id}
        if matter_id is not None:
            params["matter_id"] = matter_id
        payload = await self._request("GET", "/advances/client-retainer", params=params)
        return BalanceResponse.model_validate(payload)

    async def get_lawyer_advance(self, lawyer_id: int) -> BalanceResponse:
        payload = await self._request("GET", "/advances/lawyer-advance", params={"lawyer_id": lawyer_id})
        return BalanceResponse.model_validate(payload)

    async def compute_lawyer_balance(self, lawyer_id: int, currency: Optional[str] = None) -> LawyerBalanceResponse:
        params = {"currency": currency} if currency else None
        payload = await self._request("GET", f"/advances/lawyer-balances/{lawyer_id}", params=params)
        return LawyerBalanceResponse.model_validate(payload)
