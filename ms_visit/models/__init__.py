"""
Modelos de la base de datos
"""
from .database import Base, get_db, engine, SessionLocal
from .customer import Customer
from .visit import Visit, VisitActivity
from .photo import VisitPhoto
from .stock import AgentStock
from .sale import Sale, SaleItem
from .survey import Survey, SurveyResponse
from .sync_event import VisitSyncEvent

__all__ = [
    "Base",
    "get_db",
    "engine",
    "SessionLocal",
    "Customer",
    "Visit",
    "VisitActivity",
    "VisitPhoto",
    "AgentStock",
    "Sale",
    "SaleItem",
    "Survey",
    "SurveyResponse",
    "VisitSyncEvent",
]
