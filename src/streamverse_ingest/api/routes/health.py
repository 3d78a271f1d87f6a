"""Liveness route for load balancers and container probes."""

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    """Report that the ingest process is serving requests."""

    return {"status": "ok", "service": "streamverse-ingest"}


__all__ = ["router"]
