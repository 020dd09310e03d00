"""
Lógica de dominio del servicio de visitas
"""
from .visit_workflow import AgentContext
from .fraud import FraudEvent, FraudSignalEmitter
from .reconciliation import OfflineReconciler

__all__ = [
    "AgentContext",
    "FraudEvent",
    "FraudSignalEmitter",
    "OfflineReconciler",
]
