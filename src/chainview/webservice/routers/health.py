"""Health endpoints."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
def live() -> dict:
    """Liveness check."""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness check; fails while MongoDB does not answer."""
    connection = getattr(request.app.state, "connection", None)
    if connection is not None and not await connection.ping():
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return {"status": "ready"}
