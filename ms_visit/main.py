"""
MS-VISIT-PY - Microservicio de Ejecución de Visitas en Campo
FastAPI Application
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from .config import settings
from .exceptions import VisitServiceError, camelize
from .models import Base, engine
from .schemas import HealthResponse

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

# Crear aplicación FastAPI
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    Microservicio de ejecución de visitas de agentes de campo.

    ## Funcionalidades

    * **Visitas**: Inicio con geofencing, cierre con política de actividades requeridas
    * **Actividades**: Fotos (análisis externo), encuestas, auditorías de activos
    * **Ventas**: Descuento de stock del agente y control de crédito en una sola transacción
    * **Sincronización offline**: Reaplicación idempotente de eventos del dispositivo
    * **Fraude**: Clasificación de riesgo y alertas, sin bloquear el flujo
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# Configurar CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# MANEJO DE ERRORES
# ============================================================================

@app.exception_handler(VisitServiceError)
async def visit_service_error_handler(request: Request, exc: VisitServiceError):
    """Errores de dominio -> {detail, code, ...detalles} en camelCase"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(camelize(exc.to_dict()))
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Campos faltantes o mal formados se responden con 400"""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg")
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Solicitud inválida", "code": "VALIDATION_ERROR", "errors": errors}
    )


# Importar y configurar routers después de crear la app para evitar imports circulares
from .routers import (
    visits_router,
    sync_router,
    stock_router
)

# Incluir routers
app.include_router(
    visits_router,
    prefix=settings.API_PREFIX,
    tags=["visits"]
)

app.include_router(
    sync_router,
    prefix=settings.API_PREFIX,
    tags=["sync"]
)

app.include_router(
    stock_router,
    prefix=settings.API_PREFIX,
    tags=["stock"]
)


@app.get("/", include_in_schema=False)
async def root():
    """Redireccionar a la documentación"""
    return RedirectResponse(url="/docs")


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def root_health():
    """Health check raíz"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


# Event handlers
@app.on_event("startup")
async def startup_event():
    """Evento de inicio de la aplicación"""
    Base.metadata.create_all(bind=engine)
    logger.info(f"[STARTUP] {settings.APP_NAME} v{settings.APP_VERSION} iniciado")
    logger.info(f"Documentación disponible en: http://{settings.SERVICE_HOST}:{settings.SERVICE_PORT}/docs")
    logger.info(f"Endpoints de visitas en: {settings.API_PREFIX}")
    logger.info(
        f"Integraciones: análisis de imagen ({settings.MS_IMAGE_ANALYSIS_URL}), "
        f"fraude ({settings.MS_FRAUD_URL}), notificaciones ({settings.MS_NOTIFICATION_URL})"
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Evento de cierre de la aplicación"""
    logger.info(f"[SHUTDOWN] {settings.APP_NAME} detenido")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ms_visit.main:app",
        host=settings.SERVICE_HOST,
        port=settings.SERVICE_PORT,
        reload=settings.DEBUG
    )
