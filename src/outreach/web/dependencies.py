"""FastAPI dependency injection helpers.

Extracts shared dependencies from app.state for use in route handlers.
All dependencies are initialized during the FastAPI lifespan.

Usage:
    from outreach.web.dependencies import get_services

    @router.post("/analyze")
    async def analyze(services: Services = Depends(get_services)):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

if TYPE_CHECKING:
    from outreach.services import Services


def get_services(request: Request) -> Services:
    """Get the wired services, or 503 when startup failed."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=503,
            detail="Service unavailable: configuration failed to load. Check the server logs.",
        )
    return services
