"""
Aplicación FastAPI principal de GharBeti.
"""
import json
import logging
from typing import Dict, Optional
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from gharbeti.config import settings
from gharbeti.api.v1.router import api_router
from gharbeti.db.session import SessionLocal, get_db_connection
from gharbeti.realtime.auth import JWTCapabilityVerifier
from gharbeti.realtime.gateway import RealtimeGateway
from gharbeti.schemas.common import ErrorResponse
from gharbeti.core.exceptions import (
    GharbetiException,
    NotFoundException,
    UnauthorizedException,
    ForbiddenException,
    InvalidOperationException,
    ConflictException,
    ValidationException,
    DealSyncException,
)

# Configurar logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Crear aplicación FastAPI
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## GharBeti - Marketplace de alquiler de propiedades

    API de chat y negociación de tratos entre dueños e interesados.

    ### Características principales:

    * 💬 **Chat** - Conversaciones por anuncio con historial y no leídos
    * 🤝 **Tratos** - Propuesta, aceptación y rechazo sincronizados con el anuncio
    * ⚡ **Tiempo real** - WebSocket en /api/v1/ws con salas por usuario y conversación

    ### Documentación:

    - **Swagger UI**: /docs
    - **ReDoc**: /redoc
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# Configurar CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Gateway en tiempo real (publicador de eventos del chat)
app.state.gateway = RealtimeGateway(
    JWTCapabilityVerifier(),
    SessionLocal,
    send_queue_size=settings.WS_SEND_QUEUE_SIZE,
    send_timeout=settings.WS_SEND_TIMEOUT_SECONDS,
)


def error_response(status_code: int, exc: GharbetiException, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    """Respuesta de error con el formato común de la API."""
    body = ErrorResponse(message=exc.message, detail=exc.message, error_code=exc.error_code)
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


# Exception Handlers
@app.exception_handler(NotFoundException)
async def not_found_exception_handler(request: Request, exc: NotFoundException):
    """Handler para recursos no encontrados."""
    return error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(UnauthorizedException)
async def unauthorized_exception_handler(request: Request, exc: UnauthorizedException):
    """Handler para errores de autenticación."""
    return error_response(status.HTTP_401_UNAUTHORIZED, exc, headers={"WWW-Authenticate": "Bearer"})


@app.exception_handler(ForbiddenException)
async def forbidden_exception_handler(request: Request, exc: ForbiddenException):
    """Handler para errores de autorización."""
    return error_response(status.HTTP_403_FORBIDDEN, exc)


@app.exception_handler(InvalidOperationException)
async def invalid_operation_exception_handler(request: Request, exc: InvalidOperationException):
    """Handler para operaciones no permitidas en el estado actual."""
    return error_response(status.HTTP_400_BAD_REQUEST, exc)


@app.exception_handler(ConflictException)
async def conflict_exception_handler(request: Request, exc: ConflictException):
    """Handler para conflictos."""
    return error_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(ValidationException)
async def domain_validation_exception_handler(request: Request, exc: ValidationException):
    """Handler para errores de validación de dominio."""
    return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)


@app.exception_handler(DealSyncException)
async def deal_sync_exception_handler(request: Request, exc: DealSyncException):
    """Handler para fallos al sincronizar el anuncio de un trato."""
    return error_response(status.HTTP_502_BAD_GATEWAY, exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handler para errores de validación de Pydantic."""
    # Convertir errores a formato serializable
    errors = []
    for error in exc.errors():
        err = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        # Incluir input solo si es serializable
        if "input" in error:
            try:
                json.dumps(error["input"])
                err["input"] = error["input"]
            except (TypeError, ValueError):
                err["input"] = str(error["input"])
        errors.append(err)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "message": "Error de validación",
            "detail": errors,
            "error_code": "validation_error",
        }
    )


# Incluir routers de la API
app.include_router(api_router, prefix="/api/v1")


# Endpoint raíz
@app.get("/", tags=["Health"])
async def root():
    """
    Endpoint raíz para verificar que la API está funcionando.
    """
    return {
        "message": "GharBeti API - Chat y tratos de alquiler",
        "version": settings.APP_VERSION,
        "status": "online",
        "docs": "/docs",
        "redoc": "/redoc"
    }


# Health check
@app.get("/health", tags=["Health"])
async def health_check():
    """
    Endpoint de health check para monitoreo.
    """
    gateway = app.state.gateway
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "realtime": gateway.state.value,
        "connections": gateway.connection_count,
    }


# Startup event
@app.on_event("startup")
async def startup_event():
    """
    Evento ejecutado al iniciar la aplicación.
    """
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} iniciada (debug: {settings.DEBUG})")

    if settings.AUTO_CREATE_TABLES:
        get_db_connection().create_tables()

    app.state.gateway.start()


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """
    Evento ejecutado al apagar la aplicación.
    """
    await app.state.gateway.shutdown()
    logger.info(f"{settings.APP_NAME} detenida")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "gharbeti.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
