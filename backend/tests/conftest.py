"""Pytest configuration and fixtures for testing."""

import asyncio
import json
import os
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Callable, Optional

# Settings are read at import time; point them at SQLite before paylink loads.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./paylink_test.db")

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import paylink.models  # noqa: F401  (registers tables on Base.metadata)
from paylink.api.deps import get_chain_service, get_verification_service
from paylink.database import Base, get_db
from paylink.main import app
from paylink.models.payment_link import Network
from paylink.schemas.payment_link import PaymentLinkCreate
from paylink.services.chain_service import ChainService
from paylink.services.chains import ChainAdapter, TransferCandidate
from paylink.services.matcher_service import CandidateMatcher
from paylink.services.payment_link_service import create_payment_link
from paylink.services.payment_verification_service import PaymentVerificationService


POLYGON_WALLET = "0x" + "ab" * 20
SOLANA_WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
PAYER = "0x" + "cd" * 20


class FakeChainAdapter(ChainAdapter):
    """
    In-memory adapter returning a fixed list of transfers.

    Set `error` to make every fetch fail and `delay` to slow fetches down.
    """

    def __init__(self, network: Network, transfers=None, error: Optional[Exception] = None, delay: float = 0):
        self.network = network
        self.transfers: list[TransferCandidate] = list(transfers or [])
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch_transfers(self, wallet_address: str, since: datetime) -> list[TransferCandidate]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.transfers)

    async def health_check(self) -> bool:
        return self.error is None

    async def aclose(self) -> None:
        pass


def make_transfer(
    tx_hash: str,
    amount: str,
    minutes_ago: float = 5,
    network: Network = Network.POLYGON,
    to_address: str = POLYGON_WALLET,
    block_reference: Optional[int] = None,
) -> TransferCandidate:
    """Build a normalized transfer that happened `minutes_ago` minutes before now."""
    return TransferCandidate(
        hash=tx_hash,
        amount=Decimal(amount),
        from_address=PAYER,
        to_address=to_address,
        timestamp=datetime.utcnow() - timedelta(minutes=minutes_ago),
        network=network,
        block_reference=block_reference,
    )


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """httpx client whose requests are answered by handler instead of the network."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def rpc_result(request: httpx.Request, result) -> httpx.Response:
    """JSON-RPC success envelope echoing the request id."""
    request_id = json.loads(request.content).get("id", 1)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": request_id, "result": result})


@pytest.fixture
async def engine(tmp_path):
    """A fresh SQLite database file per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'paylink_test.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def polygon_adapter() -> FakeChainAdapter:
    return FakeChainAdapter(Network.POLYGON)


@pytest.fixture
def solana_adapter() -> FakeChainAdapter:
    return FakeChainAdapter(Network.SOLANA)


@pytest.fixture
def chains(polygon_adapter, solana_adapter) -> ChainService:
    return ChainService({
        Network.POLYGON: polygon_adapter,
        Network.SOLANA: solana_adapter,
    })


@pytest.fixture
def verifier(chains) -> PaymentVerificationService:
    """Reconciliation service with fake adapters, 0.5 USDC tolerance and a 30 minute window."""
    return PaymentVerificationService(
        chains=chains,
        matcher=CandidateMatcher(tolerance=Decimal("0.5"), timeframe=timedelta(minutes=30)),
        fetch_timeout=2,
    )


@pytest.fixture
def make_link(db: AsyncSession):
    """
    Factory creating a payment link.

    Usage:
        link = await make_link("50.00")
    """
    async def _make_link(
        amount: str = "50.00",
        network: Network = Network.POLYGON,
        wallet_address: Optional[str] = None,
    ):
        if wallet_address is None:
            wallet_address = POLYGON_WALLET if network == Network.POLYGON else SOLANA_WALLET
        return await create_payment_link(
            db,
            PaymentLinkCreate(
                wallet_address=wallet_address,
                expected_amount=Decimal(amount),
                network=network,
                product_title="Test Product",
            )
        )

    return _make_link


@pytest.fixture
async def client(session_factory, verifier, chains) -> AsyncGenerator[AsyncClient, None]:
    """
    Create test client with database and service dependency overrides.
    """
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_verification_service] = lambda: verifier
    app.dependency_overrides[get_chain_service] = lambda: chains

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
