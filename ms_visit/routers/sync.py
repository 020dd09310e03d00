"""
Router de sincronización offline
"""
from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from ..clients import ImageAnalysisClient, get_image_analysis_client
from ..models import get_db
from ..schemas.sync import SyncRequest, SyncResponse
from ..services.fraud import FraudEvent, FraudSignalEmitter
from ..services.reconciliation import APPLIED, OfflineReconciler
from ..services.visit_workflow import AgentContext, get_visit, utcnow
from ..utils import get_agent_context, get_fraud_emitter

router = APIRouter()


@router.post("/visits/{visit_id}/sync", response_model=SyncResponse)
async def sync_visit(
    visit_id: int,
    data: SyncRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context),
    image_client: ImageAnalysisClient = Depends(get_image_analysis_client),
    emitter: FraudSignalEmitter = Depends(get_fraud_emitter)
):
    """
    Reaplicar eventos registrados sin conexión

    - Orden: timestamp del cliente (no el de llegada)
    - Claves de idempotencia ya aplicadas se reportan como `duplicate`
    - Un evento rechazado no detiene los siguientes; la visita queda en ERROR
    """
    reconciler = OfflineReconciler(db, ctx, image_client)
    report = await reconciler.reconcile(visit_id, data.events)

    applied = [result for result in report.results if result.status == APPLIED]
    if applied:
        visit = get_visit(db, ctx, visit_id)
        background_tasks.add_task(emitter.emit, FraudEvent(
            event_type="OFFLINE_SYNC",
            company_id=ctx.company_id,
            agent_id=ctx.agent_id,
            visit_id=visit.id,
            customer_id=visit.customer_id,
            occurred_at=utcnow(),
            data={
                "appliedEvents": [result.type for result in applied],
                "syncStatus": report.sync_status.value
            }
        ))

    return report.as_dict()
