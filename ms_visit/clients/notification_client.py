"""
Cliente HTTP para el servicio de notificaciones
"""
import httpx
from typing import Any, Dict, Optional
import logging

from ..config import settings
from ..exceptions import DependencyUnavailableError

logger = logging.getLogger(__name__)

SERVICE_NAME = "notification"


class NotificationClient:
    """Cliente para el sink de notificaciones {type, recipient, message, data}"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.MS_NOTIFICATION_URL).rstrip('/')
        self.timeout = timeout or settings.EXTERNAL_TIMEOUT_SECONDS
        self._transport = transport

    async def send(self, type: str, recipient: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        """
        Publica una notificación

        Raises:
            DependencyUnavailableError: Si el sink no acepta la notificación
        """
        payload = {
            "type": type,
            "recipient": recipient,
            "message": message,
            "data": data or {}
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/api/v1/notifications", json=payload)
        except httpx.TimeoutException:
            raise DependencyUnavailableError(SERVICE_NAME, "Timeout del servicio de notificaciones")
        except httpx.RequestError as e:
            raise DependencyUnavailableError(SERVICE_NAME, f"Servicio de notificaciones no disponible: {str(e)}")

        if response.status_code not in (200, 201, 202):
            raise DependencyUnavailableError(SERVICE_NAME, f"El servicio de notificaciones respondió {response.status_code}")

        logger.info(f"Notificación {type} enviada a {recipient}")


# Instancia global del cliente
notification_client = NotificationClient()


def get_notification_client() -> NotificationClient:
    """Dependencia de FastAPI (reemplazable en tests)"""
    return notification_client
