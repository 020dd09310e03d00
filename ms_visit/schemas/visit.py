"""
Schemas de Visita (Visit)
Ciclo de vida: planificar, iniciar, registrar actividades y cerrar
"""
from pydantic import Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from .common import CamelModel, Location, LocationValidationResponse


class VisitPlanRequest(CamelModel):
    """Schema para agendar una visita (queda PLANNED)"""
    customer_id: int = Field(..., gt=0, description="ID del cliente a visitar")
    planned_start_time: Optional[datetime] = Field(None, description="Inicio planificado")
    planned_end_time: Optional[datetime] = Field(None, description="Fin planificado")
    notes: Optional[str] = Field(None, description="Notas de planificación")

    class Config:
        json_schema_extra = {
            "example": {
                "customerId": 12,
                "plannedStartTime": "2026-03-02T09:00:00Z",
                "plannedEndTime": "2026-03-02T09:45:00Z",
                "notes": "Revisar exhibidor nuevo"
            }
        }


class VisitStartRequest(CamelModel):
    """Schema para iniciar una visita (nueva o planificada)"""
    customer_id: int = Field(..., gt=0, description="ID del cliente")
    location: Location = Field(..., description="Ubicación GPS al llegar")
    visit_id: Optional[int] = Field(None, gt=0, description="Visita planificada a iniciar")

    class Config:
        json_schema_extra = {
            "example": {
                "customerId": 12,
                "location": {"latitude": -26.2041, "longitude": 28.0473, "accuracy": 8},
                "visitId": None
            }
        }


class RequirementResponse(CamelModel):
    activity_type: str
    minimum: int
    required: bool = True


class VisitStartResponse(CamelModel):
    """Respuesta al iniciar: checklist y resultado del geofencing"""
    visit_id: int
    status: str
    required_activities: List[RequirementResponse]
    location_validation: LocationValidationResponse
    fraud_risk: Optional[str] = None


class VisitActivityResponse(CamelModel):
    id: int
    sequence: int
    activity_type: str
    required: bool
    completed: bool
    recorded_at: datetime
    reference_id: Optional[int] = None
    data: Optional[Dict[str, Any]] = None


class VisitResponse(CamelModel):
    """Schema para respuesta de visita"""
    id: int = Field(..., description="ID de la visita")
    agent_id: int = Field(..., description="ID del agente")
    customer_id: int = Field(..., description="ID del cliente")
    status: str = Field(..., description="PLANNED, IN_PROGRESS, COMPLETED, FAILED o CANCELLED")
    planned_start_time: Optional[datetime] = None
    planned_end_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    start_distance_meters: Optional[float] = None
    location_valid: Optional[bool] = None
    required_activities: Optional[List[RequirementResponse]] = None
    notes: Optional[str] = None
    cancelled_reason: Optional[str] = None
    failed_reason: Optional[str] = None
    fraud_risk: Optional[str] = None
    sync_status: str
    sync_errors: Optional[List[Dict[str, Any]]] = None
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VisitDetailResponse(VisitResponse):
    """Visita con su bitácora de actividades"""
    activities: List[VisitActivityResponse] = Field(default_factory=list)


class VisitListResponse(CamelModel):
    """Schema para lista de visitas del agente"""
    visits: List[VisitResponse] = Field(..., description="Lista de visitas")
    total: int = Field(..., description="Total de visitas que cumplen el filtro")


class VisitCompleteRequest(CamelModel):
    departure_location: Optional[Location] = Field(None, description="Ubicación GPS al salir")
    notes: Optional[str] = Field(None, description="Notas de cierre")

    class Config:
        json_schema_extra = {
            "example": {
                "departureLocation": {"latitude": -26.2042, "longitude": 28.0474},
                "notes": "Cliente satisfecho con la entrega"
            }
        }


class VisitSummary(CamelModel):
    activity_counts: Dict[str, int]
    total_activities: int
    photos_count: int
    sales_count: int
    total_sale_value: float
    duration_seconds: int
    duration_minutes: float
    departure_location_validation: Optional[LocationValidationResponse] = None


class VisitCompleteResponse(CamelModel):
    visit_id: int
    duration: int = Field(..., description="Duración en segundos")
    summary: VisitSummary
    completion_status: str


class VisitCloseRequest(CamelModel):
    """Schema para cancelar o marcar como fallida una visita"""
    reason: Optional[str] = Field(None, max_length=500, description="Motivo")

    class Config:
        json_schema_extra = {
            "example": {"reason": "Cliente cerrado por inventario"}
        }


class NoteRequest(CamelModel):
    text: str = Field(..., min_length=1, max_length=2000, description="Texto de la nota")


class AuditAsset(CamelModel):
    """Activo auditado en el punto de venta (nevera, exhibidor, material POP)"""
    asset_code: str = Field(..., min_length=1, max_length=100)
    present: bool = True
    condition: Optional[str] = Field(None, max_length=50, description="good, damaged, missing...")
    notes: Optional[str] = None


class AuditRequest(CamelModel):
    assets: List[AuditAsset] = Field(default_factory=list)
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "assets": [
                    {"assetCode": "FRIDGE-0042", "present": True, "condition": "good"},
                    {"assetCode": "POP-BANNER-7", "present": False}
                ],
                "notes": "Banner retirado por el cliente"
            }
        }


class PhotoResponse(CamelModel):
    id: int
    visit_id: int
    photo_type: str
    filename: Optional[str] = None
    content_type: Optional[str] = None
    size_bytes: int
    checksum: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    taken_at: datetime
    analysis_status: str
    quality_score: Optional[float] = None
    brand_matches: Optional[List[Dict[str, Any]]] = None


class ImageAnalysisResponse(CamelModel):
    quality_score: Optional[float] = None
    brand_matches: List[Dict[str, Any]] = Field(default_factory=list)


class PhotoUploadResponse(CamelModel):
    photo: PhotoResponse
    ai_analysis: Optional[ImageAnalysisResponse] = None
    duplicate_of: Optional[int] = None
