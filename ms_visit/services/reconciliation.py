"""
Reconciliación de eventos registrados sin conexión

El dispositivo envía lotes de eventos {idempotency_key, type,
client_timestamp, payload}. Cada evento se reaplica con las mismas reglas
del flujo en línea, en el orden declarado por el cliente, y en su propia
transacción junto con su marca de idempotencia.
"""
import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set
import logging

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ..clients.image_analysis_client import ImageAnalysisClient
from ..config import settings
from ..constants import SyncEventType, SyncStatus
from ..exceptions import ValidationError, VisitServiceError, camelize
from ..models import VisitSyncEvent
from ..schemas.sale import SaleCreate
from ..schemas.survey import SurveySubmit
from ..schemas.sync import SyncPhotoPayload, SyncStartPayload
from ..schemas.visit import AuditRequest, NoteRequest, VisitCloseRequest, VisitCompleteRequest
from .sales import SaleLine, compose_sale
from .visit_workflow import (
    AgentContext, analyze_photo, append_note, as_utc, cancel_visit, commit_or_rollback, complete_visit,
    get_active_visit, get_visit, record_audit, record_photo, record_survey, start_visit, utcnow, validate_photo_content
)

logger = logging.getLogger(__name__)

APPLIED = "applied"
DUPLICATE = "duplicate"
REJECTED = "rejected"

PAYLOAD_SCHEMAS: Dict[SyncEventType, type] = {
    SyncEventType.START: SyncStartPayload,
    SyncEventType.PHOTO: SyncPhotoPayload,
    SyncEventType.SURVEY: SurveySubmit,
    SyncEventType.AUDIT: AuditRequest,
    SyncEventType.SALE: SaleCreate,
    SyncEventType.NOTE: NoteRequest,
    SyncEventType.COMPLETE: VisitCompleteRequest,
    SyncEventType.CANCEL: VisitCloseRequest,
}


@dataclass
class EventOutcome:
    idempotency_key: str
    type: str
    position: int
    status: str
    reference_id: Optional[int] = None
    error: Optional[Dict[str, Any]] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "idempotency_key": self.idempotency_key,
            "type": self.type,
            "position": self.position,
            "status": self.status,
            "reference_id": self.reference_id,
            "error": self.error,
        }


@dataclass
class ReconciliationReport:
    visit_id: int
    sync_status: SyncStatus
    results: List[EventOutcome] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for result in self.results if result.status == status)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "visit_id": self.visit_id,
            "sync_status": self.sync_status.value,
            "applied": self._count(APPLIED),
            "duplicates": self._count(DUPLICATE),
            "rejected": self._count(REJECTED),
            "results": [result.as_dict() for result in self.results],
        }


def order_events(events: Sequence[Any]) -> List[tuple]:
    """
    Orden declarado por el cliente: client_timestamp, y para empates la
    posición en el lote. Devuelve pares (posición, evento).
    """
    return sorted(enumerate(events), key=lambda pair: (as_utc(pair[1].client_timestamp), pair[0]))


def parse_payload(event_type: SyncEventType, payload: Dict[str, Any]) -> BaseModel:
    """
    Valida el payload contra el schema de su tipo

    Raises:
        ValidationError: Con la lista de campos inválidos
    """
    schema = PAYLOAD_SCHEMAS[event_type]
    try:
        return schema.model_validate(payload or {})
    except PydanticValidationError as e:
        raise ValidationError(
            f"Payload inválido para el evento '{event_type.value}'",
            {"errors": [
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]}
        )


def merge_sync_errors(previous: Optional[List[Dict[str, Any]]], results: Sequence[EventOutcome]) -> List[Dict[str, Any]]:
    """
    Fallos pendientes tras un lote

    Conserva los fallos de lotes anteriores cuyas claves no vinieron en este
    lote; las claves reenviadas se resuelven (aplicadas o duplicadas) o se
    reemplazan por su nuevo rechazo.
    """
    batch_keys = {result.idempotency_key for result in results}
    pending = [item for item in (previous or []) if item.get("idempotency_key") not in batch_keys]
    pending.extend(
        {
            "idempotency_key": r.idempotency_key,
            "type": r.type,
            "client_position": r.position,
            "code": r.error.get("code"),
            "detail": r.error.get("detail"),
        }
        for r in results if r.status == REJECTED
    )
    return pending


class OfflineReconciler:
    """Reaplica lotes de eventos offline sobre una visita existente"""

    def __init__(self, db: Session, ctx: AgentContext, image_client: ImageAnalysisClient):
        self.db = db
        self.ctx = ctx
        self.image_client = image_client
        self._handlers: Dict[SyncEventType, Callable] = {
            SyncEventType.START: self._apply_start,
            SyncEventType.PHOTO: self._apply_photo,
            SyncEventType.SURVEY: self._apply_survey,
            SyncEventType.AUDIT: self._apply_audit,
            SyncEventType.SALE: self._apply_sale,
            SyncEventType.NOTE: self._apply_note,
            SyncEventType.COMPLETE: self._apply_complete,
            SyncEventType.CANCEL: self._apply_cancel,
        }

    async def reconcile(self, visit_id: int, events: Sequence[Any]) -> ReconciliationReport:
        """
        Aplica el lote y actualiza el estado de sincronización de la visita

        Un evento fallido no detiene a los siguientes; la visita queda en
        ERROR con la lista estructurada de fallos, o en SYNCED si todo entró.

        Raises:
            NotFoundError: Si la visita no existe o no es del agente
            ValidationError: Si el lote excede el máximo permitido
        """
        visit = get_visit(self.db, self.ctx, visit_id)
        if len(events) > settings.MAX_SYNC_EVENTS:
            raise ValidationError(
                "Demasiados eventos en un solo lote de sincronización",
                {"received": len(events), "max_events": settings.MAX_SYNC_EVENTS}
            )

        seen: Set[str] = {
            key for (key,) in self.db.query(VisitSyncEvent.idempotency_key).filter(
                VisitSyncEvent.visit_id == visit.id
            ).all()
        }

        report = ReconciliationReport(visit_id=visit.id, sync_status=SyncStatus.SYNCED)
        for position, event in order_events(events):
            event_type = SyncEventType(event.type)
            outcome = EventOutcome(
                idempotency_key=event.idempotency_key,
                type=event_type.value,
                position=position,
                status=APPLIED,
            )
            report.results.append(outcome)

            if event.idempotency_key in seen:
                outcome.status = DUPLICATE
                continue
            seen.add(event.idempotency_key)

            try:
                outcome.reference_id = await self._apply(visit.id, event_type, event)
            except VisitServiceError as e:
                self.db.rollback()
                if self._already_recorded(visit.id, event.idempotency_key):
                    # Otro request aplicó la misma clave mientras tanto
                    outcome.status = DUPLICATE
                    continue
                outcome.status = REJECTED
                outcome.error = camelize(e.to_dict())
                logger.warning(
                    f"Evento offline {event.idempotency_key} ({event_type.value}) rechazado "
                    f"en visita {visit.id}: {e.message}"
                )

        visit = get_visit(self.db, self.ctx, visit_id)
        changed = [r for r in report.results if r.status in (APPLIED, REJECTED)]
        if not changed:
            # Lote de duplicados: el estado de sincronización no cambia
            report.sync_status = SyncStatus(visit.sync_status)
            logger.info(f"Sync de visita {visit.id}: {len(events)} eventos duplicados, sin cambios")
            return report

        failures = merge_sync_errors(visit.sync_errors, report.results)
        report.sync_status = SyncStatus.ERROR if failures else SyncStatus.SYNCED

        visit.sync_status = report.sync_status.value
        visit.sync_errors = failures or None
        visit.last_synced_at = utcnow()
        commit_or_rollback(self.db, "actualizar el estado de sincronización")

        logger.info(
            f"Sync de visita {visit.id}: {len(events)} eventos, "
            f"{len(failures)} fallos pendientes, estado {report.sync_status.value}"
        )
        return report

    def _already_recorded(self, visit_id: int, key: str) -> bool:
        return self.db.query(VisitSyncEvent.id).filter(
            VisitSyncEvent.visit_id == visit_id,
            VisitSyncEvent.idempotency_key == key
        ).first() is not None

    async def _apply(self, visit_id: int, event_type: SyncEventType, event) -> Optional[int]:
        payload = parse_payload(event_type, event.payload)
        occurred_at = as_utc(event.client_timestamp)

        # La marca viaja en la misma transacción que el efecto del evento
        self.db.add(VisitSyncEvent(
            company_id=self.ctx.company_id,
            visit_id=visit_id,
            idempotency_key=event.idempotency_key,
            event_type=event_type.value,
            client_timestamp=occurred_at,
        ))
        return await self._handlers[event_type](visit_id, payload, occurred_at)

    # ========================================================================
    # HANDLERS POR TIPO
    # ========================================================================

    async def _apply_start(self, visit_id, payload: SyncStartPayload, at):
        visit = get_visit(self.db, self.ctx, visit_id)
        start_visit(
            self.db, self.ctx,
            customer_id=payload.customer_id or visit.customer_id,
            location=payload.location,
            visit_id=visit_id,
            started_at=at,
        )
        return None

    async def _apply_photo(self, visit_id, payload: SyncPhotoPayload, at):
        get_active_visit(self.db, self.ctx, visit_id)
        try:
            content = base64.b64decode(payload.content_base64, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("El contenido de la foto no es base64 válido")
        validate_photo_content(content)

        analysis = await analyze_photo(self.image_client, content, payload.filename, payload.content_type)
        photo = record_photo(
            self.db, self.ctx, visit_id,
            content=content,
            filename=payload.filename,
            content_type=payload.content_type,
            photo_type=payload.photo_type,
            latitude=payload.latitude,
            longitude=payload.longitude,
            analysis=analysis,
            taken_at=at,
        )
        return photo.id

    async def _apply_survey(self, visit_id, payload: SurveySubmit, at):
        survey_response, _ = record_survey(
            self.db, self.ctx, visit_id, payload.survey_id, payload.answers(), submitted_at=at
        )
        return survey_response.id

    async def _apply_audit(self, visit_id, payload: AuditRequest, at):
        activity = record_audit(
            self.db, self.ctx, visit_id,
            assets=[asset.model_dump() for asset in payload.assets],
            notes=payload.notes,
            recorded_at=at,
        )
        return activity.id

    async def _apply_sale(self, visit_id, payload: SaleCreate, at):
        result = compose_sale(
            self.db, self.ctx, visit_id,
            lines=[
                SaleLine(item.product_id, item.quantity, item.unit_price, item.discount)
                for item in payload.items
            ],
            payment_method=payload.payment_method,
            total_amount=payload.total_amount,
            sold_at=at,
        )
        return result.sale.id

    async def _apply_note(self, visit_id, payload: NoteRequest, at):
        append_note(self.db, self.ctx, visit_id, payload.text, at=at)
        return None

    async def _apply_complete(self, visit_id, payload: VisitCompleteRequest, at):
        complete_visit(
            self.db, self.ctx, visit_id,
            departure_location=payload.departure_location,
            notes=payload.notes,
            completed_at=at,
        )
        return None

    async def _apply_cancel(self, visit_id, payload: VisitCloseRequest, at):
        cancel_visit(self.db, self.ctx, visit_id, reason=payload.reason, at=at)
        return None
