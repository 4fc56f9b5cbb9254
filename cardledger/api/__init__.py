from cardledger.api.bulk import router as bulk_router
from cardledger.api.collections import router as collections_router
from cardledger.api.health import router as health_router
from cardledger.api.ledger import router as ledger_router
from cardledger.api.portfolio import router as portfolio_router

__all__ = [
    "bulk_router",
    "collections_router",
    "health_router",
    "ledger_router",
    "portfolio_router",
]
