"""
Schemas base compartidos
"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional


class CamelModel(BaseModel):
    """camelCase en el wire; también acepta snake_case en la entrada"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Location(CamelModel):
    """Coordenada GPS reportada por el dispositivo"""
    latitude: float = Field(..., ge=-90, le=90, description="Latitud en grados")
    longitude: float = Field(..., ge=-180, le=180, description="Longitud en grados")
    accuracy: Optional[float] = Field(None, ge=0, description="Precisión reportada por el GPS en metros")

    class Config:
        json_schema_extra = {
            "example": {
                "latitude": -26.2041,
                "longitude": 28.0473,
                "accuracy": 12.5
            }
        }


class LocationValidationResponse(CamelModel):
    """Resultado del geofencing (advertencia, nunca bloquea)"""
    valid: bool
    distance_meters: Optional[float] = None
    radius_meters: float
    accuracy_meters: Optional[float] = None
    warnings: list = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
