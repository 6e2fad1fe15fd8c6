from fastapi import APIRouter

from photoportal.core.config import settings

router = APIRouter(tags=["health"])


@router.get("/healthz", summary="Liveness probe")
def healthz():
    return {"ok": True, "env": settings.ENV, "defaultProvider": settings.DEFAULT_PROVIDER}
