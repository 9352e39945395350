"""
Health endpoint for operational monitoring; exposes no secrets.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from habitledger import __version__
from habitledger.api.deps import Services, get_services
from habitledger.core.config import settings
from habitledger.core.logging import LOGGER_NAME, get_request_id

logger = logging.getLogger(LOGGER_NAME)

router = APIRouter(prefix="/api/health", tags=["health"])


class HealthResponse(BaseModel):
    ok: bool
    env: str
    version: str
    today: str  # reference-timezone calendar date
    computed_at: str  # UTC ISO format
    request_id: str | None = None


@router.get("", response_model=HealthResponse)
def health(services: Services = Depends(get_services)) -> HealthResponse:
    response = HealthResponse(
        ok=True,
        env=settings.ENV,
        version=__version__,
        today=services.clock.today().isoformat(),
        computed_at=datetime.now(timezone.utc).isoformat(),
        request_id=get_request_id(),
    )
    logger.debug("health.checked", extra={"request_id": response.request_id})
    return response
