"""API Gateway principal - Punto de entrada de la aplicación"""
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
import logging
from contextlib import asynccontextmanager

from app.core.config import settings
from shared.database.connection import init_db, close_db
from shared.cache.redis_client import init_redis, close_redis
from shared.utils.exceptions import AppError, app_error_handler, request_validation_handler
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler

# Configurar logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events de la aplicación"""
    # Startup
    logger.info("Iniciando aplicación...")
    await init_db()
    await init_redis()
    logger.info("Aplicación iniciada")
    yield
    # Shutdown
    logger.info("Cerrando aplicación...")
    await close_db()
    await close_redis()
    logger.info("Aplicación cerrada")


# Crear aplicación FastAPI
app = FastAPI(
    title="SkateBurn API",
    description="Backend de tickets, pases y códigos QR para eventos de SkateBurn",
    version="1.0.0",
    lifespan=lifespan
)

# Configurar CORS PRIMERO (antes de rate limiting)
if settings.APP_ENV == "development":
    logger.info("Modo desarrollo: CORS configurado para permitir todos los orígenes")
    allow_origins = ["*"]
    allow_credentials = False  # No se puede usar credentials con allow_origins=["*"]
else:
    allow_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
    allow_credentials = True
    logger.info(f"CORS origins configurados: {allow_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    expose_headers=["Content-Disposition"],
    max_age=3600,  # Cache preflight requests por 1 hora
)

# Configurar rate limiting DESPUÉS de CORS
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Errores de dominio y de validación como {"error": ...}
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

# Incluir routers de cada servicio
from services.ticket_qr.routes.qr import router as qr_router
from services.ticket_purchase.routes.purchase import router as payments_router
from services.ticket_validation.routes.validation import router as validation_router
from services.admin.routes.admin import router as admin_router
from services.access.routes.access import router as access_router

app.include_router(qr_router, prefix="/api/v1/qr", tags=["qr"])
app.include_router(payments_router, prefix="/api/v1/payments", tags=["payments"])
app.include_router(validation_router, prefix="/api/v1/tickets", tags=["tickets"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(access_router, prefix="/api/v1/access", tags=["access"])


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "ok", "service": "skateburn-api"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.APP_ENV == "development"
    )
