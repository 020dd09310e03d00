"""
Utilidades del microservicio
"""
from .auth import get_current_user, get_agent_context
from .dependencies import get_fraud_emitter

__all__ = [
    "get_current_user",
    "get_agent_context",
    "get_fraud_emitter"
]
