from fastapi import APIRouter
from leave_ledger.routers import leave_types, leave_balances, leave_requests

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(leave_types.router, tags=["Leave Types"])
api_router.include_router(leave_balances.router, tags=["Leave Balances"])
api_router.include_router(leave_requests.router, tags=["Leave Requests"])
