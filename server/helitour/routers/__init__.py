"""FastAPI routers package."""

from .booking import router as booking_router
from .catalog import router as catalog_router
from .health import metrics_router
from .health import router as health_router
from .pricing import router as pricing_router
from .refund import router as refund_router
from .transaction import router as transaction_router

__all__ = [
    "booking_router",
    "catalog_router",
    "health_router",
    "metrics_router",
    "pricing_router",
    "refund_router",
    "transaction_router",
]
