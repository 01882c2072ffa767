"""Tests for payment link endpoints."""

from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import POLYGON_WALLET, SOLANA_WALLET, make_transfer
from paylink.database import get_db
from paylink.main import app
from paylink.models.payment_link import Network
from paylink.services.chains import UpstreamUnavailable


BUYER = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "city": "London",
    "country": "United Kingdom",
}


@pytest.fixture
async def sample_link(client: AsyncClient) -> dict:
    """
    Create a 50 USDC Polygon payment link.

    Returns:
        Link data
    """
    response = await client.post(
        "/api/payment-links",
        json={
            "wallet_address": POLYGON_WALLET,
            "expected_amount": "50.00",
            "network": "polygon",
            "product_title": "Test Product",
            "description": "A test product"
        }
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_create_link(sample_link: dict):
    assert sample_link["status"] == "active"
    assert sample_link["is_active"] is True
    assert sample_link["network"] == "polygon"
    assert Decimal(sample_link["expected_amount"]) == Decimal("50")
    assert sample_link["wallet_address"].lower() == POLYGON_WALLET
    assert len(sample_link["link_id"]) == 32


@pytest.mark.asyncio
async def test_create_solana_link(client: AsyncClient):
    response = await client.post(
        "/api/payment-links",
        json={
            "wallet_address": SOLANA_WALLET,
            "expected_amount": "12.5",
            "network": "solana",
            "product_title": "Sticker pack"
        }
    )

    assert response.status_code == 201
    assert response.json()["wallet_address"] == SOLANA_WALLET


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"wallet_address": "0x1234", "expected_amount": "50", "network": "polygon"},
        {"wallet_address": "0x" + "zz" * 20, "expected_amount": "50", "network": "polygon"},
        {"wallet_address": POLYGON_WALLET, "expected_amount": "50", "network": "solana"},
        {"wallet_address": POLYGON_WALLET, "expected_amount": "0", "network": "polygon"},
        {"wallet_address": POLYGON_WALLET, "expected_amount": "50", "network": "ethereum"},
    ],
)
async def test_create_link_validation(client: AsyncClient, payload: dict):
    response = await client.post(
        "/api/payment-links",
        json={**payload, "product_title": "Invalid"}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_link(client: AsyncClient, sample_link: dict):
    response = await client.get(f"/api/payment-links/{sample_link['link_id']}")

    assert response.status_code == 200
    assert response.json()["product_title"] == "Test Product"


@pytest.mark.asyncio
async def test_get_unknown_link(client: AsyncClient):
    response = await client.get(f"/api/payment-links/{'0' * 32}")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "PAYMENT_LINK_NOT_FOUND"


@pytest.mark.asyncio
async def test_buyer_signal(client: AsyncClient, sample_link: dict):
    link_id = sample_link["link_id"]

    response = await client.post(f"/api/payment-links/{link_id}/buyer", json=BUYER)
    assert response.status_code == 200
    assert response.json()["status"] == "pending_verification"

    # Repeating the signal is harmless
    response = await client.post(f"/api/payment-links/{link_id}/buyer", json=BUYER)
    assert response.status_code == 200
    assert response.json()["status"] == "pending_verification"


@pytest.mark.asyncio
async def test_buyer_signal_requires_valid_email(client: AsyncClient, sample_link: dict):
    response = await client.post(
        f"/api/payment-links/{sample_link['link_id']}/buyer",
        json={**BUYER, "email": "not-an-email"}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_verify_confirms_payment(client: AsyncClient, sample_link: dict, polygon_adapter):
    link_id = sample_link["link_id"]
    polygon_adapter.transfers = [
        make_transfer("0xa", "10.00", minutes_ago=10),
        make_transfer("0xb", "50.00", minutes_ago=5, block_reference=52_000_000),
    ]

    await client.post(f"/api/payment-links/{link_id}/buyer", json=BUYER)
    response = await client.post(f"/api/payment-links/{link_id}/verify")

    assert response.status_code == 200
    data = response.json()
    assert data["verified"] is True
    assert data["status"] == "confirmed"
    assert data["message"] == "payment confirmed"
    assert data["payment"]["tx_hash"] == "0xb"
    assert data["payment"]["block_reference"] == 52_000_000
    assert Decimal(data["payment"]["amount"]) == Decimal("50")

    response = await client.get(f"/api/payment-links/{link_id}/payment")
    assert response.status_code == 200
    assert response.json()["tx_hash"] == "0xb"

    # Verifying again returns the same payment
    response = await client.post(f"/api/payment-links/{link_id}/verify")
    data = response.json()
    assert data["verified"] is True
    assert data["message"] == "payment already confirmed"
    assert data["payment"]["tx_hash"] == "0xb"


@pytest.mark.asyncio
async def test_verify_without_match(client: AsyncClient, sample_link: dict, polygon_adapter):
    polygon_adapter.transfers = [make_transfer("0xa", "10.00")]

    response = await client.post(f"/api/payment-links/{sample_link['link_id']}/verify")

    assert response.status_code == 200
    data = response.json()
    assert data["verified"] is False
    assert data["status"] == "active"
    assert data["message"] == "no matching payments found"
    assert data["payment"] is None


@pytest.mark.asyncio
async def test_verify_during_outage_hides_provider_error(client: AsyncClient, sample_link: dict, polygon_adapter):
    polygon_adapter.error = UpstreamUnavailable(Network.POLYGON, "alchemy_getAssetTransfers returned HTTP 503")

    response = await client.post(f"/api/payment-links/{sample_link['link_id']}/verify")

    assert response.status_code == 200
    data = response.json()
    assert data["verified"] is False
    assert data["message"] == "payment not found yet, please wait and retry"
    assert "alchemy" not in response.text


@pytest.mark.asyncio
async def test_verify_when_database_unreachable(client: AsyncClient, tmp_path):
    """A storage outage is answered with a retryable message, not a server error."""
    # The parent directory does not exist, so every connection attempt fails
    broken_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'paylink.db'}")
    broken_sessions = async_sessionmaker(broken_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with broken_sessions() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    try:
        response = await client.post(f"/api/payment-links/{'0' * 32}/verify")
    finally:
        await broken_engine.dispose()

    assert response.status_code == 200
    data = response.json()
    assert data["verified"] is False
    assert data["status"] is None
    assert data["message"] == "payment verification temporarily unavailable, please retry"
    assert data["payment"] is None


@pytest.mark.asyncio
async def test_verify_unknown_link(client: AsyncClient):
    response = await client.post(f"/api/payment-links/{'0' * 32}/verify")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_payment_not_confirmed(client: AsyncClient, sample_link: dict):
    response = await client.get(f"/api/payment-links/{sample_link['link_id']}/payment")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "PAYMENT_NOT_CONFIRMED"


@pytest.mark.asyncio
async def test_deactivate_link(client: AsyncClient, sample_link: dict):
    link_id = sample_link["link_id"]

    response = await client.post(f"/api/payment-links/{link_id}/deactivate")
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    response = await client.post(f"/api/payment-links/{link_id}/buyer", json=BUYER)
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "INVALID_STATUS_TRANSITION"

    response = await client.post(f"/api/payment-links/{link_id}/verify")
    assert response.json()["message"] == "payment link is no longer active"


@pytest.mark.asyncio
async def test_deactivate_confirmed_link_conflicts(client: AsyncClient, sample_link: dict, polygon_adapter):
    link_id = sample_link["link_id"]
    polygon_adapter.transfers = [make_transfer("0xb", "50.00")]
    await client.post(f"/api/payment-links/{link_id}/verify")

    response = await client.post(f"/api/payment-links/{link_id}/deactivate")

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_chain_health(client: AsyncClient, solana_adapter):
    response = await client.get("/api/health/chains")
    assert response.json() == {
        "status": "healthy",
        "providers": {"polygon": True, "solana": True},
    }

    solana_adapter.error = UpstreamUnavailable(Network.SOLANA, "getHealth timed out")
    response = await client.get("/api/health/chains")
    assert response.json()["status"] == "degraded"
    assert response.json()["providers"]["solana"] is False


@pytest.mark.asyncio
async def test_service_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["polling"] is False
