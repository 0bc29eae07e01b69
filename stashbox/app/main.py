import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from stashbox.app.api.v1.router import api_router
from stashbox.app.core.config import DEFAULT_ENCRYPTION_KEY, settings
from stashbox.app.core.errors import DecryptionError, DeliveryError, StashboxError, TokenGenerationError
from stashbox.app.db import init_models
from stashbox.app.security.cipher import FieldCipher

logger = logging.getLogger(__name__)


# --- LIFESPAN: tables and the field cipher are set up once per process ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.is_production and settings.ENCRYPTION_KEY == DEFAULT_ENCRYPTION_KEY:
        logger.warning("ENCRYPTION_KEY is the development default")
    await init_models()
    # scrypt runs here, not per request
    app.state.cipher = FieldCipher(
        settings.ENCRYPTION_KEY,
        salt=settings.ENCRYPTION_SALT,
        n=settings.SCRYPT_N,
        r=settings.SCRYPT_R,
        p=settings.SCRYPT_P,
    )
    logger.info("%s %s started (%s)", settings.PROJECT_NAME, settings.PROJECT_VERSION, settings.ENVIRONMENT)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    openapi_url=None if settings.is_production else f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

# Set up CORS
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(StashboxError)
async def stashbox_error_handler(request: Request, exc: StashboxError) -> JSONResponse:
    if isinstance(exc, (DecryptionError, DeliveryError, TokenGenerationError)):
        # Internal failures: log the detail, return the generic message
        logger.error("%s on %s: %s", exc.error, request.url.path, exc.message)
        message = exc.default_message
    else:
        message = exc.message
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "message": message},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "server_error", "message": "Internal server error"},
    )


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
def health():
    return {"status": "ok"}
