"""
Health check route.
"""
from fastapi import APIRouter, Request
from pastevault.models import HealthCheck

router = APIRouter()


@router.get("/api/healthz", response_model=HealthCheck)
def health_check(request: Request) -> HealthCheck:
    """
    Health check endpoint.
    Returns 200 with ok=true if application and storage are healthy.
    """
    return HealthCheck(ok=request.app.state.store.is_healthy())
