from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import create_async_engine

from tabletip_api.db.models import Base, Location, Organization, QrCode, ServerAssignment
from tabletip_api.db.session import create_sessionmaker
from tabletip_api.domain.price_quotes import _shared_price_provider
from tabletip_api.main import create_app
from tabletip_api.settings import get_settings

PAYOUT_WALLET = "0x" + "b" * 40
CUSTOMER_WALLET = "0x" + "a" * 40


@dataclass(frozen=True)
class SeededVenue:
    org_id: uuid.UUID
    location_id: uuid.UUID
    assignment_id: uuid.UUID
    server_id: uuid.UUID
    qr_code: str


async def _create_schema(database_url: str) -> None:
    engine = create_async_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


@pytest.fixture(scope="session")
def database_url(tmp_path_factory) -> str:
    explicit = os.environ.get("DATABASE_URL_TEST") or os.environ.get("TEST_DATABASE_URL")
    url = explicit or f"sqlite+aiosqlite:///{tmp_path_factory.mktemp('db') / 'tabletip_test.db'}"
    os.environ["DATABASE_URL"] = url
    get_settings.cache_clear()
    asyncio.run(_create_schema(url))
    return url


@pytest.fixture(autouse=True)
def test_env(database_url, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", database_url)
    monkeypatch.setenv("RECEIPT_POLL_ATTEMPTS", "3")
    monkeypatch.setenv("RECEIPT_POLL_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("PRICE_API_URL", "https://prices.example.test/simple/price")
    monkeypatch.delenv("CHAIN_RPC_URLS", raising=False)
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
    monkeypatch.delenv("STRIPE_PUBLISHABLE_KEY", raising=False)
    get_settings.cache_clear()
    _shared_price_provider.cache_clear()
    yield
    get_settings.cache_clear()
    _shared_price_provider.cache_clear()


@pytest_asyncio.fixture
async def db_sessionmaker(test_env):
    settings = get_settings()
    create_sessionmaker.cache_clear()
    sessionmaker = create_sessionmaker(settings.database_url)
    yield sessionmaker
    await sessionmaker.kw["bind"].dispose()
    create_sessionmaker.cache_clear()


@pytest_asyncio.fixture(autouse=True)
async def reset_db(db_sessionmaker):
    async with db_sessionmaker() as session:
        for table in reversed(Base.metadata.sorted_tables):
            await session.execute(delete(table))
        await session.commit()
    yield


@pytest.fixture
def seed_venue(db_sessionmaker) -> Callable[..., Awaitable[SeededVenue]]:
    async def _seed(
        *,
        qr_code: str = "TABLE-7",
        payout_wallet_address: str | None = PAYOUT_WALLET,
        qr_active: bool = True,
        assignment_active: bool = True,
    ) -> SeededVenue:
        org_id = uuid.uuid4()
        location_id = uuid.uuid4()
        assignment_id = uuid.uuid4()
        server_id = uuid.uuid4()
        async with db_sessionmaker() as session:
            session.add(Organization(id=org_id, name="Harbor Bistro", slug=f"harbor-{org_id.hex[:8]}"))
            await session.flush()
            session.add(Location(id=location_id, org_id=org_id, name="Harbor Bistro Downtown"))
            await session.flush()
            session.add(
                ServerAssignment(
                    id=assignment_id,
                    org_id=org_id,
                    location_id=location_id,
                    server_id=server_id,
                    display_name_override="Sam",
                    payout_wallet_address=payout_wallet_address,
                    is_active=assignment_active,
                )
            )
            await session.flush()
            session.add(
                QrCode(
                    code=qr_code,
                    server_assignment_id=assignment_id,
                    table_label="7",
                    is_active=qr_active,
                )
            )
            await session.commit()
        return SeededVenue(
            org_id=org_id,
            location_id=location_id,
            assignment_id=assignment_id,
            server_id=server_id,
            qr_code=qr_code,
        )

    return _seed


@pytest_asyncio.fixture
async def client(db_sessionmaker):
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
