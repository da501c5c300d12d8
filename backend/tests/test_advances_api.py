"""
Integration tests for the advances REST API.

Tests entry CRUD, deductions, balances, trash and error payloads.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select

from backend.app.models.audit_log import AuditLog
from backend.app.models.expense import Expense
from backend.app.services.audit import AuditAction

# Note: Client and DB setup are now in conftest.py


def retainer_payload(**overrides):
    payload = {
        "kind": "client_retainer",
        "client_id": 1,
        "matter_id": 10,
        "amount": "1000.00",
        "currency": "USD",
        "date_received": "2024-01-15",
        "payment_method": "cheque",
        "reference_number": "CHQ-001",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def retainer(client):
    response = await client.post("/v1/advances", json=retainer_payload())
    assert response.status_code == 201
    return response.json()


# TEST 1: Entry CRUD

@pytest.mark.asyncio
async def test_create_advance(client):
    response = await client.post("/v1/advances", json=retainer_payload())

    assert response.status_code == 201
    data = response.json()
    assert data["kind"] == "client_retainer"
    assert data["amount"] == "1000.00"
    assert data["balance_remaining"] == "1000.00"
    assert data["status"] == "active"
    assert data["below_minimum"] is False
    assert data["deleted_at"] is None


@pytest.mark.asyncio
async def test_create_lawyer_advance_with_client_rejected(client):
    response = await client.post("/v1/advances", json=retainer_payload(kind="lawyer_advance", lawyer_id=7))

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_LEDGER_VALIDATION"


@pytest.mark.asyncio
async def test_create_invalid_payload(client):
    response = await client.post("/v1/advances", json=retainer_payload(amount="0"))
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"

    response = await client.post("/v1/advances", json=retainer_payload(currency="usd"))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_excess_precision_rejected(client):
    response = await client.post("/v1/advances", json=retainer_payload(amount="10.005"))

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_LEDGER_VALIDATION"


@pytest.mark.asyncio
async def test_get_and_list_advances(client, retainer):
    response = await client.get(f"/v1/advances/{retainer['id']}")
    assert response.status_code == 200
    assert response.json()["reference_number"] == "CHQ-001"

    await client.post("/v1/advances", json=retainer_payload(client_id=2, date_received="2024-02-01"))

    response = await client.get("/v1/advances", params={"client_id": 1})
    data = response.json()
    assert data["total"] == 1
    assert data["advances"][0]["id"] == retainer["id"]

    response = await client.get("/v1/advances", params={"page": 1, "page_size": 1})
    data = response.json()
    assert data["total"] == 2
    assert data["advances"][0]["client_id"] == 2


@pytest.mark.asyncio
async def test_update_advance(client, retainer):
    full_object = {**retainer, "notes": "received in person"}
    for read_only in ("id", "below_minimum", "created_at", "updated_at", "deleted_at"):
        full_object.pop(read_only)

    response = await client.put(f"/v1/advances/{retainer['id']}", json=full_object)
    assert response.status_code == 200
    assert response.json()["notes"] == "received in person"

    response = await client.put(f"/v1/advances/{retainer['id']}", json={"amount": "5000"})
    assert response.status_code == 400
    assert response.json()["details"]["fields"] == ["amount"]


@pytest.mark.asyncio
async def test_unknown_advance(client):
    response = await client.get("/v1/advances/9999")

    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"


# TEST 2: Deductions

@pytest.mark.asyncio
async def test_allocate_draw_down(client, retainer):
    response = await client.post("/v1/advances/allocate", json={"advance_id": retainer["id"], "amount": "400"})
    assert response.status_code == 200
    data = response.json()
    assert data["amount"] == "400.00"
    assert data["new_balance"] == "600.00"
    assert data["status"] == "active"

    response = await client.post("/v1/advances/allocate", json={"advance_id": retainer["id"], "amount": "600"})
    assert response.json()["status"] == "depleted"

    response = await client.post("/v1/advances/allocate", json={"advance_id": retainer["id"], "amount": "1"})
    assert response.status_code == 409
    error = response.json()
    assert error["error_code"] == "ERR_LEDGER_INSUFFICIENT_FUNDS"
    assert error["details"]["available_minor"] == 0

    response = await client.get(f"/v1/advances/{retainer['id']}/allocations")
    assert [allocation["amount"] for allocation in response.json()] == ["400.00", "600.00"]


@pytest.mark.asyncio
async def test_refund_blocks_deductions(client, retainer):
    response = await client.post(f"/v1/advances/{retainer['id']}/refund")
    assert response.status_code == 200
    assert response.json()["status"] == "refunded"

    response = await client.post("/v1/advances/allocate", json={"advance_id": retainer["id"], "amount": "1"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_LEDGER_INVALID_STATE"


@pytest.mark.asyncio
async def test_deduct_retainer_and_balances(client, retainer):
    await client.post("/v1/advances", json=retainer_payload(kind="client_expense_advance", amount="300"))

    response = await client.post("/v1/advances/deduct-retainer", json={
        "client_id": 1, "matter_id": 10, "advance_type": "client_retainer", "amount": "250.50"
    })
    assert response.status_code == 200
    assert response.json()["advance_id"] == retainer["id"]

    response = await client.get("/v1/advances/client-retainer", params={"client_id": 1, "matter_id": 10})
    assert response.json()["balances"] == [{"currency": "USD", "amount": "749.50"}]

    response = await client.get("/v1/advances/client-expense-advance", params={"client_id": 1})
    assert response.json()["balances"] == [{"currency": "USD", "amount": "300.00"}]

    response = await client.post("/v1/advances/deduct-retainer", json={"client_id": 5, "amount": "1"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_expense_with_deduction(client):
    await client.post("/v1/advances", json=retainer_payload(kind="client_expense_advance", amount="100"))
    await client.post("/v1/advances", json={
        "kind": "lawyer_advance", "lawyer_id": 7, "amount": "500", "date_received": "2024-01-01"
    })

    expense = {
        "client_id": 1,
        "matter_id": 10,
        "paid_by_lawyer_id": 7,
        "amount": "80",
        "description": "Stamp duty",
        "date": "2024-02-01",
    }
    response = await client.post("/v1/advances/expense-with-deduction", json=expense)
    assert response.status_code == 201
    data = response.json()
    assert data["expense"]["amount"] == "80.00"
    assert [deduction["new_balance"] for deduction in data["deductions"]] == ["420.00", "20.00"]

    # second expense overdraws the client advance: nothing is recorded
    response = await client.post("/v1/advances/expense-with-deduction", json=expense)
    assert response.status_code == 409

    response = await client.get("/v1/expenses", params={"client_id": 1})
    assert response.json()["total"] == 1

    response = await client.get("/v1/advances/lawyer-advance", params={"lawyer_id": 7})
    assert response.json()["balances"] == [{"currency": "USD", "amount": "420.00"}]


@pytest.mark.asyncio
async def test_expense_markup_limits(client):
    expense = {"client_id": 1, "amount": "80", "description": "Courier", "date": "2024-02-01"}

    response = await client.post("/v1/expenses", json={**expense, "markup_percent": "1000"})
    assert response.status_code == 201
    assert Decimal(response.json()["markup_percent"]) == Decimal("1000")

    column = Expense.__table__.c.markup_percent.type
    assert column.precision - column.scale >= 4

    for markup in ("1000.01", "12.345", "-1"):
        response = await client.post("/v1/expenses", json={**expense, "markup_percent": markup})
        assert response.status_code == 422
        assert response.json()["error_code"] == "ERR_VALIDATION"


# TEST 3: Reports

@pytest.mark.asyncio
async def test_lawyer_balances(client):
    await client.post("/v1/advances", json={
        "kind": "lawyer_advance", "lawyer_id": 7, "amount": "500", "date_received": "2024-01-01"
    })
    await client.post("/v1/expenses", json={
        "paid_by_lawyer_id": 7, "amount": "350", "description": "Travel", "date": "2024-01-20"
    })

    response = await client.get("/v1/advances/lawyer-balances/7")
    assert response.status_code == 200
    data = response.json()
    assert data["total_spent"] == "350.00"
    assert data["net_balance"] == "150.00"
    assert data["position"] == "lawyer_holds_funds"

    response = await client.get("/v1/advances/lawyer-balances")
    assert [balance["lawyer_id"] for balance in response.json()["balances"]] == [7]


@pytest.mark.asyncio
async def test_summary_and_low_balance(client, retainer):
    await client.post("/v1/advances", json=retainer_payload(kind="fee_payment_fixed", amount="2000"))
    await client.post("/v1/advances", json={
        "kind": "lawyer_advance", "lawyer_id": 7, "amount": "100", "date_received": "2024-01-01"
    })

    response = await client.get("/v1/advances/summary")
    totals = response.json()["totals"]
    assert totals == [{
        "currency": "USD",
        "retainers": "1000.00",
        "fee_payments": "2000.00",
        "all_fees": "3000.00",
        "expense_advances": "0.00",
        "lawyer_advances": "100.00",
    }]

    response = await client.get("/v1/advances/low-balance")
    assert [entry["kind"] for entry in response.json()] == ["lawyer_advance"]


# TEST 4: Trash

@pytest.mark.asyncio
async def test_delete_restore_purge(client, retainer):
    advance_id = retainer["id"]

    response = await client.delete(f"/v1/advances/{advance_id}")
    assert response.status_code == 200
    assert response.json()["deleted_at"] is not None

    assert (await client.get(f"/v1/advances/{advance_id}")).status_code == 404
    response = await client.get("/v1/advances/trash")
    assert [entry["id"] for entry in response.json()] == [advance_id]

    response = await client.post(f"/v1/advances/{advance_id}/restore")
    assert response.status_code == 200
    assert (await client.get(f"/v1/advances/{advance_id}")).status_code == 200

    response = await client.delete(f"/v1/advances/{advance_id}/purge")
    assert response.status_code == 400

    await client.delete(f"/v1/advances/{advance_id}")
    response = await client.delete(f"/v1/advances/{advance_id}/purge")
    assert response.status_code == 204
    assert (await client.get("/v1/advances/trash")).json() == []


# TEST 5: Audit attribution

@pytest.mark.asyncio
async def test_actor_header_recorded(client, db_session):
    response = await client.post("/v1/advances", json=retainer_payload(), headers={"X-Actor": "paralegal.ana"})
    advance_id = response.json()["id"]

    result = await db_session.execute(
        select(AuditLog).where(AuditLog.entity_id == advance_id, AuditLog.action == AuditAction.ADVANCE_CREATED)
    )
    assert result.scalar_one().actor == "paralegal.ana"

    response = await client.post("/v1/advances", json=retainer_payload(), headers={"X-Actor": "   "})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_audit_trail_of_advance(client, retainer):
    headers = {"X-Actor": "clerk.bo"}
    await client.post("/v1/advances/allocate", json={"advance_id": retainer["id"], "amount": "250"}, headers=headers)
    await client.post(f"/v1/advances/{retainer['id']}/refund", headers=headers)

    response = await client.get(f"/v1/advances/{retainer['id']}/audit")

    assert response.status_code == 200
    trail = response.json()
    assert [row["action"] for row in trail] == [
        AuditAction.ADVANCE_REFUNDED, AuditAction.ADVANCE_DEDUCTED, AuditAction.ADVANCE_CREATED
    ]
    assert trail[1]["actor"] == "clerk.bo"
    assert trail[1]["metadata"]["amount_minor"] == 25000
    assert trail[0]["metadata"]["balance_remaining_minor"] == 75000

    response = await client.get(
        f"/v1/advances/{retainer['id']}/audit", params={"action": AuditAction.ADVANCE_DEDUCTED}
    )
    assert [row["action"] for row in response.json()] == [AuditAction.ADVANCE_DEDUCTED]

    assert (await client.get("/v1/advances/9999/audit")).status_code == 404


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers
