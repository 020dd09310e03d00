"""
Cliente HTTP para el clasificador de riesgo de fraude
"""
import httpx
from typing import Any, Dict, Optional
import logging

from ..config import settings
from ..constants import RiskLevel
from ..exceptions import DependencyUnavailableError

logger = logging.getLogger(__name__)

SERVICE_NAME = "fraud-risk"


class FraudRiskClient:
    """Cliente para el servicio de clasificación de fraude"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.MS_FRAUD_URL).rstrip('/')
        self.timeout = timeout or settings.FRAUD_TIMEOUT_SECONDS
        self._transport = transport

    async def classify(self, event: Dict[str, Any]) -> RiskLevel:
        """
        Clasifica un evento de actividad

        Returns:
            RiskLevel LOW | MEDIUM | HIGH | CRITICAL

        Raises:
            DependencyUnavailableError: Si el servicio no responde a tiempo o
            devuelve un nivel desconocido
        """
        url = f"{self.base_url}/api/v1/fraud/classify"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=event)
        except httpx.TimeoutException:
            raise DependencyUnavailableError(SERVICE_NAME, "Timeout del clasificador de fraude")
        except httpx.RequestError as e:
            raise DependencyUnavailableError(SERVICE_NAME, f"Clasificador de fraude no disponible: {str(e)}")

        if response.status_code != 200:
            raise DependencyUnavailableError(SERVICE_NAME, f"El clasificador de fraude respondió {response.status_code}")

        try:
            level = response.json().get("riskLevel")
            return RiskLevel(str(level).upper())
        except ValueError:
            raise DependencyUnavailableError(SERVICE_NAME, f"Respuesta inesperada del clasificador de fraude: {response.text}")


# Instancia global del cliente
fraud_client = FraudRiskClient()


def get_fraud_client() -> FraudRiskClient:
    """Dependencia de FastAPI (reemplazable en tests)"""
    return fraud_client
