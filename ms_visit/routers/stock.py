"""
Router de Stock del agente (solo lectura)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from ..models import get_db, AgentStock
from ..schemas.stock import AgentStockResponse
from ..services.visit_workflow import AgentContext
from ..utils import get_agent_context

router = APIRouter()


@router.get("/stock", response_model=List[AgentStockResponse])
async def list_agent_stock(
    db: Session = Depends(get_db),
    ctx: AgentContext = Depends(get_agent_context)
):
    """Stock que carga el agente autenticado, por producto"""
    return db.query(AgentStock).filter(
        AgentStock.company_id == ctx.company_id,
        AgentStock.agent_id == ctx.agent_id
    ).order_by(AgentStock.product_id.asc()).all()
