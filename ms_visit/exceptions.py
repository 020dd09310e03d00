"""
Errores de dominio del servicio de visitas

Cada error conoce su código HTTP; el handler registrado en main.py los
traduce a respuestas JSON con el detalle estructurado.
"""
from typing import Any, Dict, List, Optional

from pydantic.alias_generators import to_camel


class VisitServiceError(Exception):
    """Error base del servicio"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationError(VisitServiceError):
    """Entrada mal formada o regla de negocio corregible por el cliente"""

    status_code = 400
    code = "VALIDATION_ERROR"


class ConflictError(VisitServiceError):
    """Violación de un invariante (p. ej. visita activa duplicada)"""

    status_code = 409
    code = "CONFLICT"


class NotFoundError(VisitServiceError):
    """Recurso inexistente o que no pertenece al solicitante"""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Recurso no encontrado", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class IncompleteVisitError(VisitServiceError):
    """La visita no cumple las actividades requeridas para cerrarse"""

    status_code = 400
    code = "INCOMPLETE_VISIT"

    def __init__(self, missing: List[str], missing_details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(
            "La visita no puede cerrarse: faltan actividades requeridas",
            {"missing": missing, "missing_details": missing_details or []},
        )
        self.missing = missing


class DependencyUnavailableError(VisitServiceError):
    """Servicio externo (análisis de imagen, fraude, notificaciones) caído o lento"""

    status_code = 503
    code = "DEPENDENCY_UNAVAILABLE"

    def __init__(self, service: str, message: str):
        super().__init__(message, {"service": service})
        self.service = service


class StorageError(VisitServiceError):
    """Fallo transaccional; las escrituras parciales ya fueron revertidas"""

    status_code = 500
    code = "STORAGE_ERROR"


def camelize(value: Any) -> Any:
    """Convierte recursivamente las llaves de los detalles a camelCase"""
    if isinstance(value, dict):
        return {to_camel(str(key)): camelize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [camelize(item) for item in value]
    return value
