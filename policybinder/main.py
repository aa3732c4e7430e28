"""Admission webhook server for PolicyServers and policies."""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from policybinder.api.middleware.logging import LoggingMiddleware
from policybinder.api.v1.router import api_router
from policybinder.core.config import settings
from policybinder.core.logging import get_logger, setup_logging
from policybinder.models.kinds import ALL_KINDS

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info(
        f"Starting {settings.app_name} webhooks v{settings.app_version}",
        extra={"environment": settings.environment.value},
    )
    for kind in ALL_KINDS:
        logger.info(f"Serving /mutate/{kind.plural} and /validate/{kind.plural} for {kind}")

    if not settings.tls_cert_file and settings.environment == "production":
        raise RuntimeError("TLS_CERT_FILE and TLS_KEY_FILE are required in production")

    yield

    logger.info("Shutting down")


app = FastAPI(
    title=f"{settings.app_name} webhooks",
    version=settings.app_version,
    description="Defaulting and validation webhooks for policies.kubewarden.io",
    docs_url=None if settings.environment == "production" else "/docs",
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)
app.include_router(api_router)
app.mount("/metrics", make_asgi_app())


if __name__ == "__main__":
    uvicorn.run(
        "policybinder.main:app",
        host=settings.host,
        port=settings.port,
        ssl_certfile=settings.tls_cert_file,
        ssl_keyfile=settings.tls_key_file,
        log_level=settings.log_level.value.lower(),
    )
