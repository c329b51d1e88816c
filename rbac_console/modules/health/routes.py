from fastapi import APIRouter, Depends
from rbac_console.config.settings import settings
from rbac_console.core.dependencies import get_session_registry
from rbac_console.core.middleware import limiter
from rbac_console.core.sessions import SessionRegistry

router = APIRouter(tags=["health"])


@router.get("/")
async def root():
    return {"app": settings.app_name, "environment": settings.environment}


@router.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@router.get("/ready")
@limiter.exempt
async def ready(registry: SessionRegistry = Depends(get_session_registry)):
    """Ready once the app is up; reports how many console sessions are cached"""
    return {"status": "ready", "sessions": len(registry)}
