from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardledger.db.database import enable_sqlite_foreign_keys, get_session
from cardledger.main import app
from cardledger.models import failure as failure_module
from cardledger.models.context import UserContext
from cardledger.models.db import Base, CardSetDB, CatalogCardDB, CollectionDB, LedgerRowDB
from cardledger.services.catalog import SqlCatalog

# Fixed clock for staleness assertions
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def clear_finalized_responses():
    """Clear the finalized responses set between tests.

    This prevents test isolation issues where Python reuses memory
    addresses for new objects, causing id() collisions with previously
    finalized responses.
    """
    failure_module._finalized_responses.clear()
    yield
    failure_module._finalized_responses.clear()


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    event.listen(engine.sync_engine, "connect", enable_sqlite_foreign_keys)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def ctx() -> UserContext:
    return UserContext("guest")


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
async def seeded(session: AsyncSession) -> AsyncSession:
    """
    Session with a small catalog.

    base1-1   "1"    Alakazam   tcgplayer normal 10 / holofoil 25, cardmarket trend 9, synced 1h ago
    base1-2   "002"  Blastoise  tcgplayer holofoil 50 only, synced 25h ago
    base1-4   "4"    Charizard  cardmarket only, never synced
    base1-10  "10"   Mewtwo     no prices, synced 23h ago
    base2-1   "1"    Clefable   (other set)
    """
    session.add_all(
        [
            CardSetDB(id="base1", name="Base Set", series="Base"),
            CardSetDB(id="base2", name="Jungle", series="Base"),
        ]
    )
    session.add_all(
        [
            CatalogCardDB(
                id="base1-1",
                set_id="base1",
                number="1",
                name="Alakazam",
                rarity="Rare Holo",
                images={
                    "small": "https://img/base1-1.png",
                    "large": "https://img/base1-1_hires.png",
                },
                tcgplayer_prices={
                    "updated": "2024/06/01",
                    "normal": {"low": 8.0, "market": 10.0},
                    "holofoil": {"mid": 27.5, "market": 25.0},
                },
                cardmarket_prices={
                    "trendPrice": 9.0,
                    "averageSellPrice": 8.5,
                    "avg1": 9.5,
                    "avg7": 9.2,
                    "avg30": 8.8,
                    "reverseHoloTrend": 12.0,
                },
                synced_at=NOW - timedelta(hours=1),
            ),
            CatalogCardDB(
                id="base1-2",
                set_id="base1",
                number="002",
                name="Blastoise",
                rarity="Rare Holo",
                images={"large": "https://img/base1-2_hires.png"},
                tcgplayer_prices={"holofoil": {"market": 50.0}},
                synced_at=NOW - timedelta(hours=25),
            ),
            CatalogCardDB(
                id="base1-4",
                set_id="base1",
                number="4",
                name="Charizard",
                rarity="Rare Holo",
                cardmarket_prices={"trendPrice": 300.0, "avg30": 280.0, "avg7": 0, "avg1": None},
                synced_at=None,
            ),
            CatalogCardDB(
                id="base1-10",
                set_id="base1",
                number="10",
                name="Mewtwo",
                rarity="Rare Holo",
                synced_at=NOW - timedelta(hours=23),
            ),
            CatalogCardDB(
                id="base2-1",
                set_id="base2",
                number="1",
                name="Clefable",
                rarity="Rare Holo",
                synced_at=NOW,
            ),
        ]
    )
    await session.commit()
    return session


@pytest.fixture
def catalog(session: AsyncSession) -> SqlCatalog:
    return SqlCatalog(session)


@pytest.fixture
async def collection(seeded: AsyncSession, ctx: UserContext) -> CollectionDB:
    """A manual collection owned by the guest user."""
    collection = CollectionDB(user_id=ctx.user_id, name="Binder", type="manual")
    seeded.add(collection)
    await seeded.commit()
    return collection


AddRow = Callable[..., Awaitable[LedgerRowDB]]


@pytest.fixture
def add_row(session: AsyncSession) -> AddRow:
    """
    Insert a raw ledger row, bypassing the reconciler.

    Used to stage rows that older unguarded writes could have left behind.
    """

    async def _add(
        collection_id: str,
        card_id: str,
        quantity: int,
        variant: str = "normal",
        notes: str | None = None,
        age_minutes: int = 0,
    ) -> LedgerRowDB:
        row = LedgerRowDB(
            collection_id=collection_id,
            card_id=card_id,
            variant=variant,
            quantity=quantity,
            notes=notes,
            created_at=NOW - timedelta(minutes=age_minutes),
        )
        session.add(row)
        await session.commit()
        return row

    return _add


@pytest.fixture
async def client(session_factory):
    """Provide an async test client with overridden database session."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
