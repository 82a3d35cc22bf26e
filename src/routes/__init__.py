# src/routes/__init__.py
from .identity import router as identity_router
from .patients import router as patients_router
from .providers import router as providers_router
from .health_records import router as health_records_router
from .share_requests import router as share_requests_router
from .stats import router as stats_router

__all__ = [
    "identity_router",
    "patients_router",
    "providers_router",
    "health_records_router",
    "share_requests_router",
    "stats_router",
]
