"""Health check endpoints for Kubernetes probes."""

import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field

from policybinder.core.config import settings
from policybinder.core.logging import get_logger
from policybinder.models.kinds import ALL_KINDS

logger = get_logger(__name__)

router = APIRouter()

APP_START_TIME = datetime.now(timezone.utc)


class HealthStatus(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Overall health status")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    uptime_seconds: float = Field(..., description="Webhook server uptime in seconds")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Application environment")
    checks: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class ReadinessStatus(BaseModel):
    """Readiness check response model."""

    ready: bool = Field(..., description="Whether admission requests can be served")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    checks: Dict[str, bool] = Field(default_factory=dict)
    message: Optional[str] = None


def _tls_configured() -> bool:
    if not settings.tls_cert_file or not settings.tls_key_file:
        return False
    return os.path.exists(settings.tls_cert_file) and os.path.exists(settings.tls_key_file)


def check_component_health(component: str) -> Dict[str, Any]:
    """Check health of a specific component."""
    if component == "logging":
        logger.debug("Health check test log")
        return {"status": "healthy", "message": "Logging operational"}

    if component == "webhooks":
        served = sorted(kind.plural for kind in ALL_KINDS)
        return {"status": "healthy", "message": f"Serving {', '.join(served)}"}

    if component == "tls":
        if _tls_configured():
            return {"status": "healthy", "message": "Serving certificate loaded"}
        if settings.environment == "development":
            return {"status": "degraded", "message": "Running without TLS"}
        return {"status": "unhealthy", "message": "Serving certificate missing"}

    return {"status": "unknown", "message": f"No health check for {component}"}


@router.get(
    settings.health_check_path,
    response_model=HealthStatus,
    responses={
        200: {"description": "Webhook server is healthy"},
        503: {"description": "Webhook server is unhealthy"},
    },
    summary="Health Check",
    description="Kubernetes liveness probe endpoint",
)
async def health_check(response: Response) -> HealthStatus:
    uptime = (datetime.now(timezone.utc) - APP_START_TIME).total_seconds()

    checks = {
        "logging": check_component_health("logging"),
        "webhooks": check_component_health("webhooks"),
        "tls": check_component_health("tls"),
    }

    statuses = [check["status"] for check in checks.values()]
    if "unhealthy" in statuses:
        overall_status = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif "degraded" in statuses:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    if overall_status != "healthy":
        logger.warning("Health check failed", extra={"status": overall_status, "checks": checks})

    return HealthStatus(
        status=overall_status,
        uptime_seconds=uptime,
        version=settings.app_version,
        environment=settings.environment.value,
        checks=checks,
    )


@router.get(
    settings.readiness_check_path,
    response_model=ReadinessStatus,
    responses={
        200: {"description": "Ready to serve admission requests"},
        503: {"description": "Not ready"},
    },
    summary="Readiness Check",
    description="Kubernetes readiness probe endpoint",
)
async def readiness_check(response: Response) -> ReadinessStatus:
    """
    The API server calls the webhooks over HTTPS only, so readiness
    requires a serving certificate outside development.
    """
    checks = {"tls": _tls_configured() or settings.environment == "development"}

    is_ready = all(checks.values())
    if not is_ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        message = "Webhook server not ready"
        logger.warning("Readiness check failed", extra={"checks": checks})
    else:
        message = "Ready to serve admission requests"

    return ReadinessStatus(ready=is_ready, checks=checks, message=message)
