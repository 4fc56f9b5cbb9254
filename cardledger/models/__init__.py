from cardledger.models.catalog import CatalogCard, PricePoint
from cardledger.models.context import UserContext
from cardledger.models.failure import (
    ApiResponse,
    CatalogUnavailableError,
    FailureDetail,
    FailureKind,
    InvalidRequestError,
    KnownError,
    NotFoundError,
    OutcomeType,
    PersistenceError,
    create_unknown_failure,
    finalize_response,
    is_finalized,
)
from cardledger.models.ledger import (
    BulkEntry,
    CardSummary,
    CommitItem,
    CompactionResult,
    DuplicateGroup,
    MatchResult,
    UpsertAction,
    UpsertResult,
)
from cardledger.models.valuation import PortfolioValuation, SelectedPrice, ValuationItem

__all__ = [
    "ApiResponse",
    "BulkEntry",
    "CardSummary",
    "CatalogCard",
    "CatalogUnavailableError",
    "CommitItem",
    "CompactionResult",
    "DuplicateGroup",
    "FailureDetail",
    "FailureKind",
    "InvalidRequestError",
    "KnownError",
    "MatchResult",
    "NotFoundError",
    "OutcomeType",
    "PersistenceError",
    "PortfolioValuation",
    "PricePoint",
    "SelectedPrice",
    "UpsertAction",
    "UpsertResult",
    "UserContext",
    "ValuationItem",
    "create_unknown_failure",
    "finalize_response",
    "is_finalized",
]
