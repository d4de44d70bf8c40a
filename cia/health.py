from typing import Dict

from fastapi import APIRouter, Request

from cia.constants import SHARED_VERSION

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> Dict[str, str]:
    """Liveness check; also reports the configured service version."""
    configuration = request.app.state.configuration
    return {"status": "ok", "version": configuration.get_string(SHARED_VERSION) or ""}
