"""
Scheduled job to compact ledger rows.

Bulk commits append one row per imported card, so a key can end up with
several rows. This job merges them collection by collection. Can be run
as a standalone script or called from a scheduler.
"""

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError

from cardledger.config import settings
from cardledger.db.database import async_session_factory, init_db
from cardledger.db.operations import list_all_collections
from cardledger.models.context import UserContext
from cardledger.models.failure import KnownError
from cardledger.services.catalog import SqlCatalog
from cardledger.services.ledger_reconciler import LedgerReconciler

logger = logging.getLogger(__name__)


async def compact_one(user_id: str, collection_id: str) -> int:
    """
    Compact a single collection in its own transaction.

    Args:
        user_id: Owner of the collection
        collection_id: Collection to compact

    Returns:
        Number of rows removed
    """
    try:
        async with async_session_factory() as session:
            reconciler = LedgerReconciler(session, SqlCatalog(session))
            result = await reconciler.compact_collection(UserContext(user_id), collection_id)
            await session.commit()
    except KnownError as e:
        logger.error("Error compacting %s: %s (%s)", collection_id, e.message, e.detail)
        return 0
    except SQLAlchemyError as e:
        logger.error("Store error committing %s: %s", collection_id, e)
        return 0

    if result.removed_rows:
        logger.info(
            "Collection %s: merged %d key(s), removed %d row(s)",
            collection_id,
            result.merged_keys,
            result.removed_rows,
        )
    return result.removed_rows


async def run_compaction(user_id: str | None = None) -> dict[str, int]:
    """
    Compact every collection, or only those of one user.

    Returns:
        Dict mapping collection id to number of rows removed
    """
    async with async_session_factory() as session:
        collections = [
            (c.user_id, c.id)
            for c in await list_all_collections(session)
            if user_id is None or c.user_id == user_id
        ]

    results: dict[str, int] = {}
    for owner, collection_id in collections:
        results[collection_id] = await compact_one(owner, collection_id)

    total = sum(results.values())
    logger.info(
        "Compaction complete. %d collection(s) checked, %d row(s) removed",
        len(results),
        total,
    )
    return results


async def _run() -> None:
    await init_db()
    await run_compaction()


def main() -> None:
    """CLI entry point for running compaction."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(_run())


if __name__ == "__main__":
    main()
