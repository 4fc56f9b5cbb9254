"""
CardLedger services.

Ledger reconciliation, bulk import, duplicate detection and valuation.
"""

from cardledger.services.bulk_importer import (
    BulkImporter,
    match_entries,
    match_number,
    normalize_number,
)
from cardledger.services.catalog import CatalogReference, SqlCatalog
from cardledger.services.duplicate_aggregator import DuplicateAggregator
from cardledger.services.ledger_reconciler import UNSET, LedgerReconciler
from cardledger.services.pricing import (
    DEFAULT_EXCHANGE_RATES,
    CurrencyConverter,
    FixedRateConverter,
    infer_price_history,
    is_price_stale,
    select_unit_price,
)
from cardledger.services.valuation import ValuationEngine

__all__ = [
    "BulkImporter",
    "CatalogReference",
    "CurrencyConverter",
    "DEFAULT_EXCHANGE_RATES",
    "DuplicateAggregator",
    "FixedRateConverter",
    "LedgerReconciler",
    "SqlCatalog",
    "UNSET",
    "ValuationEngine",
    "infer_price_history",
    "is_price_stale",
    "match_entries",
    "match_number",
    "normalize_number",
    "select_unit_price",
]
