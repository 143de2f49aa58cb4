from typing import Dict

from fastapi import APIRouter

router = APIRouter()


@router.get("/", summary="Liveness check")
async def health() -> Dict[str, str]:
    """Return a static payload; used by Docker health checks."""
    return {"status": "ok"}
