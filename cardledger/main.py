import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cardledger.api import (
    bulk_router,
    collections_router,
    health_router,
    ledger_router,
    portfolio_router,
)
from cardledger.config import settings
from cardledger.db.database import init_db
from cardledger.models.failure import KnownError, create_unknown_failure, finalize_response

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("cardledger"),
    lifespan=lifespan,
)

app.include_router(bulk_router)
app.include_router(collections_router)
app.include_router(health_router)
app.include_router(ledger_router)
app.include_router(portfolio_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    """Classified failures keep their status code and explanation."""
    response = finalize_response(exc.to_response())
    return JSONResponse(status_code=exc.status_code, content=response.model_dump(mode="json"))


@app.exception_handler(Exception)
async def unknown_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unclassified is reported by type only."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    response = create_unknown_failure(exc)
    return JSONResponse(status_code=500, content=response.model_dump(mode="json"))
