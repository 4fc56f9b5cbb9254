"""
Liveness and readiness checks.

Readiness needs the ledger store. It also reports how many catalog cards
are cached, since bulk matching and valuation have nothing to work with
until a catalog sync has run.
"""

import logging

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from cardledger.api.deps import SessionDep
from cardledger.models.db import CatalogCardDB

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    database: str | None = None
    catalog_cards: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness only; touches nothing."""
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(response: Response, session: SessionDep) -> HealthResponse:
    """503 when the store cannot be queried. An empty catalog is still ready."""
    try:
        cached = await session.scalar(select(func.count()).select_from(CatalogCardDB))
    except SQLAlchemyError as e:
        logger.warning("Readiness check failed: %s", e)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", database="disconnected")
    return HealthResponse(status="ready", database="connected", catalog_cards=cached or 0)
