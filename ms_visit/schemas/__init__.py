"""
Schemas Pydantic para validación
"""
from .common import CamelModel, Location, LocationValidationResponse, HealthResponse
from .visit import (
    VisitPlanRequest,
    VisitStartRequest,
    VisitStartResponse,
    VisitResponse,
    VisitDetailResponse,
    VisitListResponse,
    VisitActivityResponse,
    VisitCompleteRequest,
    VisitCompleteResponse,
    VisitCloseRequest,
    NoteRequest,
    AuditRequest,
    PhotoUploadResponse
)
from .sale import (
    SaleItemCreate,
    SaleCreate,
    SaleCreateResponse
)
from .survey import (
    SurveySubmit,
    SurveySubmitResponse
)
from .sync import (
    SyncEventIn,
    SyncRequest,
    SyncResponse,
    SyncStartPayload,
    SyncPhotoPayload
)
from .stock import AgentStockResponse

__all__ = [
    "CamelModel",
    "Location",
    "LocationValidationResponse",
    "HealthResponse",
    "VisitPlanRequest",
    "VisitStartRequest",
    "VisitStartResponse",
    "VisitResponse",
    "VisitDetailResponse",
    "VisitListResponse",
    "VisitActivityResponse",
    "VisitCompleteRequest",
    "VisitCompleteResponse",
    "VisitCloseRequest",
    "NoteRequest",
    "AuditRequest",
    "PhotoUploadResponse",
    "SaleItemCreate",
    "SaleCreate",
    "SaleCreateResponse",
    "SurveySubmit",
    "SurveySubmitResponse",
    "SyncEventIn",
    "SyncRequest",
    "SyncResponse",
    "SyncStartPayload",
    "SyncPhotoPayload",
    "AgentStockResponse",
]
