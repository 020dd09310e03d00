"""
Schemas del stock que carga el agente
"""
from typing import Optional
from datetime import datetime

from .common import CamelModel


class AgentStockResponse(CamelModel):
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    updated_at: Optional[datetime] = None
