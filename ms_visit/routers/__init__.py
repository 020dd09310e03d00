"""
Routers de la API
"""
from .visits import router as visits_router
from .sync import router as sync_router
from .stock import router as stock_router

__all__ = [
    "visits_router",
    "sync_router",
    "stock_router"
]
