"""
Cliente HTTP para el servicio de análisis de imágenes
Calidad de foto y reconocimiento de marcas (servicio opaco)
"""
import httpx
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from ..config import settings
from ..exceptions import DependencyUnavailableError

logger = logging.getLogger(__name__)

SERVICE_NAME = "image-analysis"


@dataclass
class ImageAnalysis:
    quality_score: Optional[float]
    brand_matches: List[Dict[str, Any]] = field(default_factory=list)


class ImageAnalysisClient:
    """Cliente para el servicio de análisis de imágenes"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.MS_IMAGE_ANALYSIS_URL).rstrip('/')
        self.timeout = timeout or settings.EXTERNAL_TIMEOUT_SECONDS
        self._transport = transport

    async def analyze(self, content: bytes, filename: str, content_type: str) -> ImageAnalysis:
        """
        Envía la foto al servicio y devuelve el resumen del análisis

        Args:
            content: Bytes crudos de la foto
            filename: Nombre del archivo
            content_type: MIME type

        Returns:
            ImageAnalysis con qualityScore y brandMatches

        Raises:
            DependencyUnavailableError: Timeout, error de red o respuesta inválida
        """
        url = f"{self.base_url}/api/v1/analysis/image"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    files={"file": (filename, content, content_type)}
                )
        except httpx.TimeoutException:
            logger.warning(f"Timeout al analizar imagen {filename} en {url}")
            raise DependencyUnavailableError(SERVICE_NAME, "Timeout del análisis de imagen")
        except httpx.RequestError as e:
            logger.warning(f"Error de conexión con el servicio de análisis de imágenes: {str(e)}")
            raise DependencyUnavailableError(SERVICE_NAME, "Servicio de análisis de imagen no disponible")

        if response.status_code != 200:
            logger.warning(f"Análisis de imagen falló: {response.status_code} - {response.text}")
            raise DependencyUnavailableError(SERVICE_NAME, f"El análisis de imagen respondió {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise DependencyUnavailableError(SERVICE_NAME, "El análisis de imagen devolvió un JSON inválido")

        return ImageAnalysis(
            quality_score=data.get("qualityScore"),
            brand_matches=data.get("brandMatches") or []
        )


# Instancia global del cliente
image_analysis_client = ImageAnalysisClient()


def get_image_analysis_client() -> ImageAnalysisClient:
    """Dependencia de FastAPI (reemplazable en tests)"""
    return image_analysis_client
