"""Top level API router registration."""
from fastapi import APIRouter, FastAPI

from relief_finance.api.routes import (
    allocations,
    budgets,
    cost_details,
    health,
    payment_order_lines,
    payment_orders,
    signatures,
    transactions,
)


def register_routes(application: FastAPI) -> None:
    """Register all API routers with the FastAPI application."""
    api_router = APIRouter(prefix="/api")

    api_router.include_router(health.router, tags=["health"])
    api_router.include_router(budgets.router, tags=["budgets"])
    api_router.include_router(cost_details.router, tags=["cost-details"])
    api_router.include_router(transactions.router, tags=["transactions"])
    api_router.include_router(allocations.router, tags=["cost-allocations"])
    api_router.include_router(payment_orders.router, tags=["payment-orders"])
    api_router.include_router(payment_order_lines.router, tags=["payment-order-lines"])
    api_router.include_router(signatures.router, tags=["signatures"])

    application.include_router(api_router)


__all__ = ["register_routes"]
