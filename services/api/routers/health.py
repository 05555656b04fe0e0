"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> dict:
    cache = getattr(request.app.state, "cache", None)
    return {
        "success": True,
        "data": {
            "status": "healthy",
            "version": request.app.state.settings.app_version,
            "cache": cache.backend_name if cache is not None else None,
        },
        "requestId": request.state.request_id,
    }
