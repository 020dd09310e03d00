"""
Router de Visitas (Visits)
Ciclo de vida de la visita en campo: inicio, actividades, venta y cierre
"""
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session
from typing import Optional

from ..clients import ImageAnalysisClient, get_image_analysis_client
from ..constants import VisitStatus
from ..models import get_db
from ..schemas.sale import SaleCreate, SaleCreateResponse
from ..schemas.survey import SurveySubmit, SurveySubmitResponse
from ..schemas.visit import (
    AuditRequest, NoteRequest, PhotoUploadResponse, VisitActivityResponse, VisitCloseRequest,
    VisitCompleteRequest, VisitCompleteResponse, VisitDetailResponse, VisitListResponse, VisitPlanRequest,
    VisitResponse, VisitStartRequest, VisitStartResponse
)
from ..services import visit_workflow
from ..services.fraud import FraudEvent, FraudSignalEmitter
from ..services.sales import SaleLine, compose_sale
from ..services.visit_workflow import AgentContext
from ..utils import get_agent_context, get_fraud_emitter

router = APIRouter()


# ============================================================================
# CICLO DE VIDA
# ============================================================================

@router.post("/visits", response_model=VisitResponse, status_code=status.HTTP_201_CREATED)
async def plan_visit(
    data: VisitPlanRequest,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context)
):
    """Agendar una visita (queda en estado PLANNED)"""
    return visit_workflow.plan_visit(
        db, ctx,
        customer_id=data.customer_id,
        planned_start_time=data.planned_start_time,
        planned_end_time=data.planned_end_time,
        notes=data.notes
    )


@router.post("/visits/start", response_model=VisitStartResponse, status_code=status.HTTP_201_CREATED)
async def start_visit(
    data: VisitStartRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context),
    emitter: FraudSignalEmitter = Depends(get_fraud_emitter)
):
    """
    Iniciar una visita

    - 404 si el cliente no existe en la empresa
    - 409 si el agente ya tiene una visita en progreso
    - El geofencing solo advierte (locationValidation.valid = false)
    """
    result = visit_workflow.start_visit(
        db, ctx,
        customer_id=data.customer_id,
        location=data.location,
        visit_id=data.visit_id
    )
    visit = result.visit

    # Evaluación acotada por timeout; nunca bloquea el inicio
    event = FraudEvent(
        event_type="VISIT_START",
        company_id=ctx.company_id,
        agent_id=ctx.agent_id,
        visit_id=visit.id,
        customer_id=visit.customer_id,
        occurred_at=visit.actual_start_time,
        latitude=data.location.latitude,
        longitude=data.location.longitude,
        data={
            "distanceMeters": result.location_validation.distance_meters,
            "locationValid": result.location_validation.valid
        }
    )
    risk_level = await emitter.assess(event)
    visit.fraud_risk = risk_level.value
    visit_workflow.commit_or_rollback(db, "registrar el riesgo de fraude")
    background_tasks.add_task(emitter.notify_if_risky, event, risk_level)

    return {
        "visit_id": visit.id,
        "status": visit.status,
        "required_activities": visit.required_activities,
        "location_validation": result.location_validation.as_dict(),
        "fraud_risk": risk_level.value
    }


@router.get("/visits", response_model=VisitListResponse)
async def list_visits(
    status_filter: Optional[VisitStatus] = Query(None, alias="status", description="Filtrar por estado"),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context)
):
    """Listar las visitas del agente, más recientes primero"""
    visits, total = visit_workflow.list_visits(db, ctx, status=status_filter, limit=limit)
    return {"visits": visits, "total": total}


@router.get("/visits/{visit_id}", response_model=VisitDetailResponse)
async def get_visit(
    visit_id: int,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context)
):
    """Obtener una visita con su bitácora de actividades"""
    return visit_workflow.get_visit(db, ctx, visit_id)


@router.post("/visits/{visit_id}/complete", response_model=VisitCompleteResponse)
async def complete_visit(
    visit_id: int,
    data: VisitCompleteRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context),
    emitter: FraudSignalEmitter = Depends(get_fraud_emitter)
):
    """
    Cerrar la visita

    400 con la lista `missing` si faltan actividades requeridas.
    """
    result = visit_workflow.complete_visit(
        db, ctx, visit_id,
        departure_location=data.departure_location,
        notes=data.notes
    )
    visit = result.visit
    summary = dict(result.summary)
    if result.departure_validation:
        summary["departure_location_validation"] = result.departure_validation.as_dict()

    background_tasks.add_task(emitter.emit, FraudEvent(
        event_type="VISIT_COMPLETE",
        company_id=ctx.company_id,
        agent_id=ctx.agent_id,
        visit_id=visit.id,
        customer_id=visit.customer_id,
        occurred_at=visit.actual_end_time,
        latitude=data.departure_location.latitude if data.departure_location else None,
        longitude=data.departure_location.longitude if data.departure_location else None,
        data={
            "durationSeconds": visit.duration_seconds,
            "salesCount": summary["sales_count"],
            "totalSaleValue": str(summary["total_sale_value"])
        }
    ))

    return {
        "visit_id": visit.id,
        "duration": visit.duration_seconds,
        "summary": summary,
        "completion_status": visit.status
    }


@router.post("/visits/{visit_id}/cancel", response_model=VisitResponse)
async def cancel_visit(
    visit_id: int,
    data: VisitCloseRequest,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context)
):
    """Cancelar una visita PLANNED o IN_PROGRESS"""
    return visit_workflow.cancel_visit(db, ctx, visit_id, reason=data.reason)


@router.post("/visits/{visit_id}/fail", response_model=VisitResponse)
async def fail_visit(
    visit_id: int,
    data: VisitCloseRequest,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context)
):
    """Marcar una visita como fallida (cliente cerrado, sin acceso...)"""
    return visit_workflow.fail_visit(db, ctx, visit_id, reason=data.reason)


@router.post("/visits/{visit_id}/notes", response_model=VisitResponse)
async def add_note(
    visit_id: int,
    data: NoteRequest,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context)
):
    """Agregar una nota (permitido en cualquier estado)"""
    return visit_workflow.append_note(db, ctx, visit_id, data.text)


# ============================================================================
# ACTIVIDADES
# ============================================================================

@router.post(
    "/visits/{visit_id}/activities/photo",
    response_model=PhotoUploadResponse,
    status_code=status.HTTP_201_CREATED
)
async def upload_photo(
    visit_id: int,
    file: UploadFile = File(...),
    photo_type: str = Form("general", alias="photoType"),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context),
    image_client: ImageAnalysisClient = Depends(get_image_analysis_client)
):
    """
    Registrar una foto

    Los bytes se envían al servicio de análisis; aquí solo se guardan los
    metadatos y el resumen. Si el análisis no responde la foto se guarda igual.
    """
    visit_workflow.get_active_visit(db, ctx, visit_id)
    content = await file.read()
    visit_workflow.validate_photo_content(content)

    analysis = await visit_workflow.analyze_photo(image_client, content, file.filename, file.content_type)
    photo = visit_workflow.record_photo(
        db, ctx, visit_id,
        content=content,
        filename=file.filename,
        content_type=file.content_type,
        photo_type=photo_type,
        latitude=latitude,
        longitude=longitude,
        analysis=analysis
    )

    activity = visit_workflow.get_visit(db, ctx, visit_id).activities[-1]
    return {
        "photo": photo,
        "ai_analysis": (
            {"quality_score": analysis.quality_score, "brand_matches": analysis.brand_matches}
            if analysis else None
        ),
        "duplicate_of": (activity.data or {}).get("duplicate_of")
    }


@router.post(
    "/visits/{visit_id}/activities/survey",
    response_model=SurveySubmitResponse,
    status_code=status.HTTP_201_CREATED
)
async def submit_survey(
    visit_id: int,
    data: SurveySubmit,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context)
):
    """Registrar respuestas de encuesta; 400 con errores por pregunta"""
    survey_response, validation = visit_workflow.record_survey(
        db, ctx, visit_id, data.survey_id, data.answers()
    )
    return {
        "survey_response": survey_response,
        "validation_result": validation.as_dict()
    }


@router.post(
    "/visits/{visit_id}/activities/audit",
    response_model=VisitActivityResponse,
    status_code=status.HTTP_201_CREATED
)
async def record_audit(
    visit_id: int,
    data: AuditRequest,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context)
):
    """Registrar la auditoría de activos del punto de venta"""
    return visit_workflow.record_audit(
        db, ctx, visit_id,
        assets=[asset.model_dump() for asset in data.assets],
        notes=data.notes
    )


# ============================================================================
# VENTAS
# ============================================================================

@router.post(
    "/visits/{visit_id}/sales",
    response_model=SaleCreateResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_sale(
    visit_id: int,
    data: SaleCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context),
    emitter: FraudSignalEmitter = Depends(get_fraud_emitter)
):
    """
    Registrar una venta con descuento de stock

    400 con `shortages` si falta stock o `credit` si se excede el crédito;
    en ambos casos no se escribe nada.
    """
    result = compose_sale(
        db, ctx, visit_id,
        lines=[
            SaleLine(item.product_id, item.quantity, item.unit_price, item.discount)
            for item in data.items
        ],
        payment_method=data.payment_method,
        total_amount=data.total_amount
    )
    sale = result.sale

    background_tasks.add_task(emitter.emit, FraudEvent(
        event_type="SALE",
        company_id=ctx.company_id,
        agent_id=ctx.agent_id,
        visit_id=visit_id,
        customer_id=sale.customer_id,
        occurred_at=sale.sold_at,
        data={
            "saleId": sale.id,
            "invoiceNumber": sale.invoice_number,
            "totalAmount": str(sale.total_amount),
            "paymentMethod": sale.payment_method,
            "items": len(sale.items)
        }
    ))

    return {"sale": sale, "invoice": result.invoice}
