"""API routers for the Geodiag backend."""
from fastapi import APIRouter

from . import health, licenses, offers, orders, payments, registration, webhooks


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(registration.router)
    api_router.include_router(offers.router)
    api_router.include_router(orders.router)
    api_router.include_router(payments.router)
    api_router.include_router(webhooks.router)
    api_router.include_router(licenses.router)
    return api_router
