from .entries import router as arp_router
from .anomalies import router as anomalies_router
from .monitor import router as monitor_router
from .trust import router as trust_router
from .export import router as export_router

__all__ = [
    "arp_router",
    "anomalies_router",
    "monitor_router",
    "trust_router",
    "export_router",
]
