"""API v1 router assembly."""

from fastapi import APIRouter

from policybinder.api.v1.endpoints import admission, health

api_router = APIRouter()

# Health checks (no prefix)
api_router.include_router(health.router, tags=["health"])

# AdmissionReview endpoints, registered on the webhook configurations
api_router.include_router(admission.router, tags=["admission"])
