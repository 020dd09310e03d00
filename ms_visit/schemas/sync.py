"""
Schemas de sincronización offline
"""
from pydantic import Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from ..constants import SyncEventType
from .common import CamelModel, Location


class SyncEventIn(CamelModel):
    """Evento encolado en el dispositivo mientras estaba sin conexión"""
    idempotency_key: str = Field(..., min_length=1, max_length=100, description="Clave única por evento")
    type: SyncEventType = Field(..., description="Tipo de evento")
    client_timestamp: datetime = Field(..., description="Momento en que ocurrió en el dispositivo")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Contenido según el tipo")


class SyncRequest(CamelModel):
    events: List[SyncEventIn] = Field(..., description="Eventos en cualquier orden")

    class Config:
        json_schema_extra = {
            "example": {
                "events": [
                    {
                        "idempotencyKey": "dev-7f3a-0001",
                        "type": "start",
                        "clientTimestamp": "2026-03-02T09:01:12Z",
                        "payload": {"customerId": 12, "location": {"latitude": -26.2041, "longitude": 28.0473}}
                    },
                    {
                        "idempotencyKey": "dev-7f3a-0002",
                        "type": "note",
                        "clientTimestamp": "2026-03-02T09:05:40Z",
                        "payload": {"text": "Sin señal en la zona"}
                    }
                ]
            }
        }


class SyncEventResult(CamelModel):
    idempotency_key: str
    type: str
    position: int = Field(..., description="Posición del evento en el lote recibido")
    status: str = Field(..., description="applied, duplicate o rejected")
    reference_id: Optional[int] = None
    error: Optional[Dict[str, Any]] = None


class SyncResponse(CamelModel):
    visit_id: int
    sync_status: str
    applied: int
    duplicates: int
    rejected: int
    results: List[SyncEventResult]


# ============================================================================
# PAYLOADS POR TIPO DE EVENTO
# ============================================================================

class SyncStartPayload(CamelModel):
    location: Location
    customer_id: Optional[int] = Field(None, gt=0)


class SyncPhotoPayload(CamelModel):
    content_base64: str = Field(..., min_length=1, description="Bytes de la foto en base64")
    filename: Optional[str] = Field(None, max_length=255)
    content_type: Optional[str] = Field(None, max_length=100)
    photo_type: str = Field("general", max_length=50)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
