"""
Emisor de señales de fraude

Reenvía eventos de visita/venta al clasificador externo y alerta cuando el
riesgo es alto. Nunca bloquea el flujo: solo anota y notifica.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
import logging

from ..clients.fraud_client import FraudRiskClient
from ..clients.notification_client import NotificationClient
from ..config import settings
from ..constants import ALERT_RISK_LEVELS, RiskLevel
from ..exceptions import DependencyUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class FraudEvent:
    event_type: str
    company_id: int
    agent_id: int
    visit_id: Optional[int]
    customer_id: Optional[int]
    occurred_at: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "eventType": self.event_type,
            "companyId": self.company_id,
            "agentId": self.agent_id,
            "visitId": self.visit_id,
            "customerId": self.customer_id,
            "occurredAt": self.occurred_at.isoformat(),
            "location": (
                {"latitude": self.latitude, "longitude": self.longitude}
                if self.latitude is not None and self.longitude is not None else None
            ),
            "data": self.data,
        }


class FraudSignalEmitter:
    """Clasifica eventos y dispara alertas de fraude"""

    def __init__(
        self,
        fraud_client: FraudRiskClient,
        notification_client: NotificationClient,
        recipient: Optional[str] = None
    ):
        self.fraud_client = fraud_client
        self.notification_client = notification_client
        self.recipient = recipient or settings.FRAUD_ALERT_RECIPIENT

    async def assess(self, event: FraudEvent) -> RiskLevel:
        """Nivel de riesgo del evento; UNKNOWN si el clasificador no responde"""
        try:
            return await self.fraud_client.classify(event.to_payload())
        except DependencyUnavailableError as e:
            logger.warning(
                f"Clasificador de fraude no disponible para {event.event_type} "
                f"(visita {event.visit_id}): {e.message} - riesgo UNKNOWN"
            )
            return RiskLevel.UNKNOWN

    async def notify_if_risky(self, event: FraudEvent, risk_level: RiskLevel) -> bool:
        """Envía la alerta solo para HIGH/CRITICAL. Devuelve si se notificó"""
        if risk_level not in ALERT_RISK_LEVELS:
            return False

        message = (
            f"Riesgo de fraude {risk_level.value} en {event.event_type} "
            f"del agente {event.agent_id} (visita {event.visit_id})"
        )
        try:
            await self.notification_client.send(
                type="FRAUD_ALERT",
                recipient=self.recipient,
                message=message,
                data={**event.to_payload(), "riskLevel": risk_level.value}
            )
        except DependencyUnavailableError as e:
            logger.warning(f"No se pudo enviar alerta de fraude ({message}): {e.message}")
            return False

        logger.info(f"Alerta de fraude emitida: {message}")
        return True

    async def emit(self, event: FraudEvent) -> RiskLevel:
        """Clasifica y notifica; pensado para ejecutarse como background task"""
        risk_level = await self.assess(event)
        await self.notify_if_risky(event, risk_level)
        return risk_level
