"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def health(request: Request) -> dict:
    """Liveness, plus whether the initial cluster sync has completed."""
    runtime = getattr(request.app.state, "runtime", None)
    return {
        "status": "healthy",
        "version": request.app.version,
        "synced": bool(runtime and runtime.synced),
    }
