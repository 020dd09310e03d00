"""
Máquina de estados de la visita

PLANNED -> IN_PROGRESS -> {COMPLETED, CANCELLED, FAILED}

IN_PROGRESS solo se alcanza con start(), COMPLETED solo con complete().
Los estados terminales solo aceptan notas (append-only) y los campos de
auditoría de sincronización.
"""
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..clients.image_analysis_client import ImageAnalysis, ImageAnalysisClient
from ..config import settings
from ..constants import ActivityType, SINGULAR_ACTIVITIES, TERMINAL_STATUSES, VisitStatus
from ..exceptions import (
    ConflictError, DependencyUnavailableError, IncompleteVisitError, NotFoundError, StorageError, ValidationError
)
from ..models import Customer, Sale, Survey, SurveyResponse, Visit, VisitActivity, VisitPhoto
from .geofence import within_radius
from .requirements import (
    Requirement, count_activities, evaluate_completion, requirements_snapshot, resolve_requirements
)
from .surveys import SurveyValidationResult, validate_responses

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentContext:
    """Identidad del solicitante: tenant + agente (extraídos del JWT)"""
    company_id: int
    agent_id: int


@dataclass
class LocationValidation:
    valid: bool
    distance_meters: Optional[float]
    radius_meters: float
    accuracy_meters: Optional[float] = None
    warnings: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "distance_meters": round(self.distance_meters, 2) if self.distance_meters is not None else None,
            "radius_meters": self.radius_meters,
            "accuracy_meters": self.accuracy_meters,
            "warnings": self.warnings,
        }


@dataclass
class StartResult:
    visit: Visit
    requirements: List[Requirement]
    location_validation: LocationValidation


@dataclass
class CompletionResult:
    visit: Visit
    summary: Dict[str, Any]
    departure_validation: Optional[LocationValidation]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite devuelve datetimes naive; se asumen en UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def commit_or_rollback(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error de almacenamiento al {action}: {str(e)}")
        raise StorageError(f"No se pudo {action}") from e


# ============================================================================
# CONSULTAS
# ============================================================================

def get_customer(db: Session, company_id: int, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(
        Customer.id == customer_id,
        Customer.company_id == company_id,
        Customer.is_active == True
    ).first()
    if not customer:
        raise NotFoundError("Cliente no encontrado", {"customer_id": customer_id})
    return customer


def get_visit(db: Session, ctx: AgentContext, visit_id: int) -> Visit:
    """Visita del tenant y del agente solicitante; 404 en cualquier otro caso"""
    visit = db.query(Visit).filter(
        Visit.id == visit_id,
        Visit.company_id == ctx.company_id,
        Visit.agent_id == ctx.agent_id
    ).first()
    if not visit:
        raise NotFoundError("Visita no encontrada", {"visit_id": visit_id})
    return visit


def list_visits(
    db: Session,
    ctx: AgentContext,
    status: Optional[VisitStatus] = None,
    limit: int = 20,
) -> Tuple[List[Visit], int]:
    """Visitas del agente, más recientes primero; devuelve (página, total)"""
    query = db.query(Visit).filter(
        Visit.company_id == ctx.company_id,
        Visit.agent_id == ctx.agent_id
    )
    if status:
        query = query.filter(Visit.status == status.value)

    total = query.count()
    visits = query.order_by(Visit.created_at.desc(), Visit.id.desc()).limit(limit).all()
    return visits, total


def get_active_visit(db: Session, ctx: AgentContext, visit_id: int) -> Visit:
    visit = get_visit(db, ctx, visit_id)
    if visit.status != VisitStatus.IN_PROGRESS.value:
        raise NotFoundError("Visita no encontrada o no está en progreso", {"visit_id": visit_id, "status": visit.status})
    return visit


def find_active_visit(db: Session, ctx: AgentContext) -> Optional[Visit]:
    return db.query(Visit).filter(
        Visit.company_id == ctx.company_id,
        Visit.agent_id == ctx.agent_id,
        Visit.status == VisitStatus.IN_PROGRESS.value
    ).first()


# ============================================================================
# UTILIDADES
# ============================================================================

def validate_location(customer: Customer, location, radius_meters: Optional[float] = None) -> LocationValidation:
    """
    Geofence contra la coordenada fija del cliente

    Política "advertir, no bloquear": el resultado solo se reporta.
    """
    radius = settings.GEOFENCE_RADIUS_METERS if radius_meters is None else radius_meters
    result = within_radius(
        (location.latitude, location.longitude),
        (customer.latitude, customer.longitude),
        radius
    )
    accuracy = float(location.accuracy) if getattr(location, "accuracy", None) is not None else None

    warnings = []
    if not result.ok:
        warnings.append(
            f"La ubicación está a {result.distance_meters:.0f}m del cliente (permitido {radius:.0f}m)"
        )
    if accuracy is not None and accuracy > radius:
        warnings.append(f"Precisión GPS insuficiente (>{radius:.0f}m)")

    return LocationValidation(
        valid=result.ok,
        distance_meters=result.distance_meters,
        radius_meters=radius,
        accuracy_meters=accuracy,
        warnings=warnings,
    )


def validate_photo_content(content: bytes) -> None:
    if not content:
        raise ValidationError("La foto está vacía")
    if len(content) > settings.MAX_PHOTO_BYTES:
        raise ValidationError(
            "La foto excede el tamaño máximo",
            {"size_bytes": len(content), "max_bytes": settings.MAX_PHOTO_BYTES}
        )


async def analyze_photo(
    client: ImageAnalysisClient,
    content: bytes,
    filename: Optional[str],
    content_type: Optional[str],
) -> Optional[ImageAnalysis]:
    """Análisis externo de la foto; None si el servicio no está disponible"""
    try:
        return await client.analyze(content, filename or "photo.jpg", content_type or "image/jpeg")
    except DependencyUnavailableError as e:
        logger.warning(f"Análisis de imagen no disponible, la foto se guarda sin análisis: {e.message}")
        return None


def _is_required(visit: Visit, activity_type: ActivityType) -> bool:
    """Requerida si el mínimo del snapshot aún no se alcanzó"""
    for requirement in visit.required_activities or []:
        if requirement.get("activity_type") == activity_type.value:
            recorded = sum(1 for a in visit.activities if a.activity_type == activity_type.value)
            return recorded < int(requirement.get("minimum", 0))
    return False


def append_activity(
    visit: Visit,
    activity_type: ActivityType,
    recorded_at: datetime,
    reference_id: Optional[int] = None,
    data: Optional[Dict[str, Any]] = None,
) -> VisitActivity:
    if activity_type in SINGULAR_ACTIVITIES and any(
        a.activity_type == activity_type.value for a in visit.activities
    ):
        raise ConflictError(
            f"La actividad '{activity_type.value}' ya fue registrada en esta visita",
            {"visit_id": visit.id, "activity_type": activity_type.value}
        )

    sequence = max((a.sequence for a in visit.activities), default=0) + 1
    activity = VisitActivity(
        company_id=visit.company_id,
        sequence=sequence,
        activity_type=activity_type.value,
        required=_is_required(visit, activity_type),
        completed=True,
        recorded_at=recorded_at,
        reference_id=reference_id,
        data=data or {},
    )
    visit.activities.append(activity)
    return activity


def _append_note(visit: Visit, text: str, at: datetime) -> None:
    entry = f"[{at.isoformat()}] {text.strip()}"
    visit.notes = f"{visit.notes}\n{entry}" if visit.notes else entry


def build_summary(db: Session, visit: Visit) -> Dict[str, Any]:
    counts = count_activities(visit.activities)
    sales_total = db.query(func.coalesce(func.sum(Sale.total_amount), 0)).filter(
        Sale.company_id == visit.company_id,
        Sale.visit_id == visit.id
    ).scalar()
    duration = visit.duration_seconds or 0
    return {
        "activity_counts": {activity_type.value: n for activity_type, n in counts.items()},
        "total_activities": sum(counts.values()),
        "photos_count": counts[ActivityType.PHOTO],
        "sales_count": counts[ActivityType.SALE],
        "total_sale_value": Decimal(sales_total).quantize(Decimal("0.01")),
        "duration_seconds": duration,
        "duration_minutes": round(duration / 60, 1),
    }


# ============================================================================
# TRANSICIONES
# ============================================================================

def plan_visit(
    db: Session,
    ctx: AgentContext,
    customer_id: int,
    planned_start_time: Optional[datetime] = None,
    planned_end_time: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Visit:
    """Agenda una visita PLANNED para el agente"""
    get_customer(db, ctx.company_id, customer_id)

    if planned_start_time and planned_end_time and planned_end_time <= planned_start_time:
        raise ValidationError("El fin planificado debe ser posterior al inicio planificado")

    visit = Visit(
        company_id=ctx.company_id,
        agent_id=ctx.agent_id,
        customer_id=customer_id,
        status=VisitStatus.PLANNED.value,
        planned_start_time=planned_start_time,
        planned_end_time=planned_end_time,
        notes=notes,
    )
    db.add(visit)
    commit_or_rollback(db, "agendar la visita")
    db.refresh(visit)
    return visit


def start_visit(
    db: Session,
    ctx: AgentContext,
    customer_id: int,
    location,
    visit_id: Optional[int] = None,
    started_at: Optional[datetime] = None,
) -> StartResult:
    """
    Inicia una visita (o una visita planificada existente)

    Raises:
        NotFoundError: Cliente o visita planificada inexistente
        ConflictError: El agente ya tiene una visita IN_PROGRESS
    """
    customer = get_customer(db, ctx.company_id, customer_id)

    active = find_active_visit(db, ctx)
    if active:
        raise ConflictError(
            "El agente ya tiene una visita en progreso",
            {"active_visit_id": active.id}
        )

    if visit_id is not None:
        visit = get_visit(db, ctx, visit_id)
        if visit.status != VisitStatus.PLANNED.value:
            raise ConflictError(
                f"Solo se pueden iniciar visitas planificadas (la visita está {visit.status})",
                {"visit_id": visit.id, "status": visit.status}
            )
        if visit.customer_id != customer.id:
            raise ValidationError(
                "La visita planificada pertenece a otro cliente",
                {"visit_id": visit.id, "customer_id": visit.customer_id}
            )
    else:
        visit = Visit(
            company_id=ctx.company_id,
            agent_id=ctx.agent_id,
            customer_id=customer.id,
            status=VisitStatus.PLANNED.value,
        )
        db.add(visit)

    started_at = started_at or utcnow()
    validation = validate_location(customer, location)
    requirements = resolve_requirements(customer)

    visit.status = VisitStatus.IN_PROGRESS.value
    visit.actual_start_time = started_at
    visit.start_latitude = location.latitude
    visit.start_longitude = location.longitude
    visit.start_accuracy = validation.accuracy_meters
    visit.start_distance_meters = round(validation.distance_meters, 2)
    visit.location_valid = validation.valid
    visit.required_activities = requirements_snapshot(requirements)

    append_activity(
        visit,
        ActivityType.ARRIVAL,
        recorded_at=started_at,
        data={
            "latitude": location.latitude,
            "longitude": location.longitude,
            "accuracy": validation.accuracy_meters,
            "distance_meters": round(validation.distance_meters, 2),
            "location_valid": validation.valid,
        }
    )

    try:
        db.commit()
    except IntegrityError as e:
        # Otro start concurrente ganó el índice único parcial
        db.rollback()
        logger.warning(f"Start concurrente rechazado para agente {ctx.agent_id}: {str(e.orig)}")
        raise ConflictError("El agente ya tiene una visita en progreso")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error de almacenamiento al iniciar visita: {str(e)}")
        raise StorageError("No se pudo iniciar la visita") from e

    db.refresh(visit)

    if not validation.valid:
        logger.warning(
            f"Visita {visit.id} iniciada fuera de geofence: "
            f"{validation.distance_meters:.0f}m del cliente {customer.id}"
        )
    logger.info(f"Visita {visit.id} iniciada por agente {ctx.agent_id} en cliente {customer.id}")

    return StartResult(visit=visit, requirements=requirements, location_validation=validation)


def record_photo(
    db: Session,
    ctx: AgentContext,
    visit_id: int,
    content: bytes,
    filename: Optional[str],
    content_type: Optional[str],
    photo_type: str = "general",
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    analysis: Optional[ImageAnalysis] = None,
    taken_at: Optional[datetime] = None,
) -> VisitPhoto:
    """
    Registra una foto: solo metadatos + resumen del análisis externo
    """
    visit = get_active_visit(db, ctx, visit_id)
    validate_photo_content(content)

    taken_at = taken_at or utcnow()
    checksum = hashlib.sha256(content).hexdigest()

    # Por agente y no por visita: reutilizar una foto en otra visita también cuenta
    duplicate = db.query(VisitPhoto.id).filter(
        VisitPhoto.company_id == ctx.company_id,
        VisitPhoto.agent_id == ctx.agent_id,
        VisitPhoto.checksum == checksum
    ).first()

    photo = VisitPhoto(
        company_id=ctx.company_id,
        visit_id=visit.id,
        agent_id=ctx.agent_id,
        photo_type=photo_type or "general",
        filename=filename,
        content_type=content_type,
        size_bytes=len(content),
        checksum=checksum,
        latitude=latitude,
        longitude=longitude,
        taken_at=taken_at,
        analysis_status="completed" if analysis else "unavailable",
        quality_score=analysis.quality_score if analysis else None,
        brand_matches=analysis.brand_matches if analysis else None,
    )
    db.add(photo)

    try:
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("No se pudo registrar la foto") from e

    append_activity(
        visit,
        ActivityType.PHOTO,
        recorded_at=taken_at,
        reference_id=photo.id,
        data={
            "photo_type": photo.photo_type,
            "analysis_status": photo.analysis_status,
            "quality_score": analysis.quality_score if analysis else None,
            "duplicate_of": duplicate.id if duplicate else None,
        }
    )
    commit_or_rollback(db, "registrar la foto")
    db.refresh(photo)
    return photo


def record_survey(
    db: Session,
    ctx: AgentContext,
    visit_id: int,
    survey_id: int,
    responses: List[Dict[str, Any]],
    submitted_at: Optional[datetime] = None,
) -> Tuple[SurveyResponse, SurveyValidationResult]:
    """
    Valida y registra la respuesta de una encuesta

    Raises:
        ValidationError: Con la lista de errores por pregunta
    """
    visit = get_active_visit(db, ctx, visit_id)

    survey = db.query(Survey).filter(
        Survey.id == survey_id,
        Survey.company_id == ctx.company_id,
        Survey.is_active == True
    ).first()
    if not survey:
        raise NotFoundError("Encuesta no encontrada", {"survey_id": survey_id})

    result = validate_responses(survey.questions or [], responses)
    if not result.valid:
        raise ValidationError(
            "Las respuestas no cumplen el esquema de la encuesta",
            {"errors": [error.as_dict() for error in result.errors]}
        )

    submitted_at = submitted_at or utcnow()
    survey_response = SurveyResponse(
        company_id=ctx.company_id,
        survey_id=survey.id,
        visit_id=visit.id,
        agent_id=ctx.agent_id,
        responses=list(responses),
        submitted_at=submitted_at,
    )
    db.add(survey_response)

    try:
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("No se pudo registrar la respuesta de la encuesta") from e

    append_activity(
        visit,
        ActivityType.SURVEY,
        recorded_at=submitted_at,
        reference_id=survey_response.id,
        data={"survey_id": survey.id, "answered": result.answered}
    )
    commit_or_rollback(db, "registrar la encuesta")
    db.refresh(survey_response)
    return survey_response, result


def record_audit(
    db: Session,
    ctx: AgentContext,
    visit_id: int,
    assets: List[Dict[str, Any]],
    notes: Optional[str] = None,
    recorded_at: Optional[datetime] = None,
) -> VisitActivity:
    """Registra una auditoría de activos (neveras, exhibidores, material POP)"""
    visit = get_active_visit(db, ctx, visit_id)

    if not assets:
        raise ValidationError("La auditoría debe incluir al menos un activo")

    activity = append_activity(
        visit,
        ActivityType.AUDIT,
        recorded_at=recorded_at or utcnow(),
        data={
            "assets": assets,
            "notes": notes,
            "assets_checked": len(assets),
            "assets_missing": sum(1 for asset in assets if not asset.get("present", True)),
        }
    )
    commit_or_rollback(db, "registrar la auditoría")
    db.refresh(activity)
    return activity


def complete_visit(
    db: Session,
    ctx: AgentContext,
    visit_id: int,
    departure_location=None,
    notes: Optional[str] = None,
    completed_at: Optional[datetime] = None,
) -> CompletionResult:
    """
    Cierra la visita si la bitácora cumple los requisitos (sin importar el orden)

    Raises:
        IncompleteVisitError: Con la lista estructurada de faltantes
    """
    visit = get_active_visit(db, ctx, visit_id)
    customer = get_customer(db, ctx.company_id, visit.customer_id)

    requirements = resolve_requirements(customer)
    missing = evaluate_completion(requirements, count_activities(visit.activities))
    if missing:
        raise IncompleteVisitError(
            [item.message for item in missing],
            [item.as_dict() for item in missing]
        )

    completed_at = completed_at or utcnow()
    departure_validation = None
    departure_data: Dict[str, Any] = {}
    if departure_location is not None:
        departure_validation = validate_location(customer, departure_location)
        visit.end_latitude = departure_location.latitude
        visit.end_longitude = departure_location.longitude
        visit.end_accuracy = departure_validation.accuracy_meters
        departure_data = {
            "latitude": departure_location.latitude,
            "longitude": departure_location.longitude,
            "distance_meters": round(departure_validation.distance_meters, 2),
            "location_valid": departure_validation.valid,
        }

    append_activity(visit, ActivityType.DEPARTURE, recorded_at=completed_at, data=departure_data)

    started = as_utc(visit.actual_start_time) or completed_at
    visit.actual_end_time = completed_at
    visit.duration_seconds = max(0, int((as_utc(completed_at) - started).total_seconds()))
    visit.status = VisitStatus.COMPLETED.value
    if notes:
        _append_note(visit, notes, completed_at)

    summary = build_summary(db, visit)
    commit_or_rollback(db, "cerrar la visita")
    db.refresh(visit)

    logger.info(f"Visita {visit.id} completada en {visit.duration_seconds}s")
    return CompletionResult(visit=visit, summary=summary, departure_validation=departure_validation)


def _close_visit(
    db: Session,
    ctx: AgentContext,
    visit_id: int,
    status: VisitStatus,
    reason: Optional[str],
    at: Optional[datetime] = None,
) -> Visit:
    visit = get_visit(db, ctx, visit_id)
    if visit.status in [s.value for s in TERMINAL_STATUSES]:
        raise ConflictError(
            f"La visita ya está {visit.status}",
            {"visit_id": visit.id, "status": visit.status}
        )

    now = as_utc(at) or utcnow()
    visit.status = status.value
    visit.actual_end_time = now
    if visit.actual_start_time:
        visit.duration_seconds = max(0, int((now - as_utc(visit.actual_start_time)).total_seconds()))
    if status == VisitStatus.CANCELLED:
        visit.cancelled_reason = reason
    else:
        visit.failed_reason = reason

    commit_or_rollback(db, f"marcar la visita como {status.value}")
    db.refresh(visit)
    logger.info(f"Visita {visit.id} marcada como {status.value}")
    return visit


def cancel_visit(
    db: Session, ctx: AgentContext, visit_id: int, reason: Optional[str] = None, at: Optional[datetime] = None
) -> Visit:
    return _close_visit(db, ctx, visit_id, VisitStatus.CANCELLED, reason, at)


def fail_visit(
    db: Session, ctx: AgentContext, visit_id: int, reason: Optional[str] = None, at: Optional[datetime] = None
) -> Visit:
    return _close_visit(db, ctx, visit_id, VisitStatus.FAILED, reason, at)


def append_note(db: Session, ctx: AgentContext, visit_id: int, text: str, at: Optional[datetime] = None) -> Visit:
    """Notas append-only, permitidas en cualquier estado"""
    if not text or not text.strip():
        raise ValidationError("El texto de la nota es requerido")
    visit = get_visit(db, ctx, visit_id)
    _append_note(visit, text, at or utcnow())
    commit_or_rollback(db, "agregar la nota")
    db.refresh(visit)
    return visit
