"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import advances, expenses

router = APIRouter()

# Advances, retainers, deductions and lawyer balances
router.include_router(advances.router)

# Expense records
router.include_router(expenses.router)
