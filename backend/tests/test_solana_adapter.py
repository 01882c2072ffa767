"""Tests for the Solana transfer adapter."""

import json
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

import httpx
import pytest

from conftest import SOLANA_WALLET, mock_client, rpc_result
from paylink.models.payment_link import Network
from paylink.services.chains import SolanaAdapter, UpstreamUnavailable

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
OTHER_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
WALLET_TOKEN_ACCOUNT = "wallet-usdc-token-account"
PAYER_TOKEN_ACCOUNT = "payer-usdc-token-account"
PAYER = "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T"


def unix_minutes_ago(minutes: float) -> int:
    return int(time.time() - minutes * 60)


def signature_entry(signature: str, minutes_ago: float = 5, err=None) -> dict:
    return {
        "signature": signature,
        "slot": 250_000_000,
        "err": err,
        "memo": None,
        "blockTime": unix_minutes_ago(minutes_ago),
        "confirmationStatus": "confirmed",
    }


def token_transaction(
    amount_raw: int,
    kind: str = "transferChecked",
    mint: str = USDC_MINT,
    owner: str = SOLANA_WALLET,
    minutes_ago: float = 5,
    err=None,
    slot: int = 250_000_001,
) -> dict:
    info = {
        "source": PAYER_TOKEN_ACCOUNT,
        "destination": WALLET_TOKEN_ACCOUNT,
        "authority": PAYER,
    }
    if kind == "transferChecked":
        info["mint"] = mint
        info["tokenAmount"] = {
            "amount": str(amount_raw),
            "decimals": 6,
            "uiAmount": amount_raw / 10 ** 6,
            "uiAmountString": str(Decimal(amount_raw) / Decimal(10 ** 6)),
        }
    else:
        info["amount"] = str(amount_raw)

    return {
        "slot": slot,
        "blockTime": unix_minutes_ago(minutes_ago),
        "meta": {
            "err": err,
            "preTokenBalances": [
                {"accountIndex": 1, "mint": mint, "owner": owner},
                {"accountIndex": 2, "mint": mint, "owner": PAYER},
            ],
            "postTokenBalances": [
                {"accountIndex": 1, "mint": mint, "owner": owner},
                {"accountIndex": 2, "mint": mint, "owner": PAYER},
            ],
            "innerInstructions": [],
        },
        "transaction": {
            "signatures": ["sig"],
            "message": {
                "accountKeys": [
                    {"pubkey": PAYER, "signer": True, "writable": True},
                    {"pubkey": WALLET_TOKEN_ACCOUNT, "signer": False, "writable": True},
                    {"pubkey": PAYER_TOKEN_ACCOUNT, "signer": False, "writable": True},
                ],
                "instructions": [
                    {
                        "program": "spl-token",
                        "programId": "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
                        "parsed": {"type": kind, "info": info},
                    }
                ],
            },
        },
    }


def solana_handler(signatures: list[dict], details: dict[str, Optional[dict]], failing: set[str] = frozenset()):
    """Answer getSignaturesForAddress and getTransaction from fixed data."""
    calls = {"getTransaction": []}

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["method"] == "getSignaturesForAddress":
            return rpc_result(request, signatures)
        if body["method"] == "getTransaction":
            signature = body["params"][0]
            calls["getTransaction"].append(signature)
            if signature in failing:
                raise httpx.ConnectError("connection reset", request=request)
            return rpc_result(request, details.get(signature))
        if body["method"] == "getHealth":
            return rpc_result(request, "ok")
        return httpx.Response(404)

    return handler, calls


def make_adapter(handler) -> SolanaAdapter:
    return SolanaAdapter(
        rpc_url="https://solana.test",
        usdc_mint=USDC_MINT,
        detail_concurrency=3,
        client=mock_client(handler),
    )


def window() -> datetime:
    return datetime.utcnow() - timedelta(minutes=30)


@pytest.mark.asyncio
async def test_detail_failures_do_not_hide_the_match():
    """Ten signatures, three detail fetches fail, the matching transfer is still found."""
    signatures = [signature_entry(f"sig{i}") for i in range(10)]
    details = {f"sig{i}": token_transaction(1_000_000, mint=OTHER_MINT) for i in range(10)}
    details["sig7"] = token_transaction(50_000_000)

    handler, calls = solana_handler(signatures, details, failing={"sig1", "sig4", "sig8"})
    adapter = make_adapter(handler)

    transfers = await adapter.fetch_transfers(SOLANA_WALLET, window())

    assert len(calls["getTransaction"]) == 10
    assert len(transfers) == 1
    transfer = transfers[0]
    assert transfer.hash == "sig7"
    assert transfer.amount == Decimal("50")
    assert transfer.to_address == SOLANA_WALLET
    assert transfer.from_address == PAYER
    assert transfer.network == Network.SOLANA
    assert transfer.block_reference == 250_000_001


@pytest.mark.asyncio
async def test_plain_transfer_resolves_mint_from_token_balances():
    signatures = [signature_entry("plain")]
    details = {"plain": token_transaction(12_340_000, kind="transfer")}

    handler, _ = solana_handler(signatures, details)
    transfers = await make_adapter(handler).fetch_transfers(SOLANA_WALLET, window())

    assert len(transfers) == 1
    assert transfers[0].amount == Decimal("12.34")


@pytest.mark.asyncio
async def test_every_usdc_transfer_in_a_transaction_is_returned():
    """A small fee transfer ahead of the payment must not hide the payment."""
    detail = token_transaction(100_000)
    payment = token_transaction(50_000_000)
    detail["transaction"]["message"]["instructions"].extend(payment["transaction"]["message"]["instructions"])

    handler, _ = solana_handler([signature_entry("split")], {"split": detail})
    transfers = await make_adapter(handler).fetch_transfers(SOLANA_WALLET, window())

    assert [t.hash for t in transfers] == ["split", "split"]
    assert [t.amount for t in transfers] == [Decimal("0.1"), Decimal("50")]


@pytest.mark.asyncio
async def test_old_and_failed_signatures_are_not_fetched():
    signatures = [
        signature_entry("recent"),
        signature_entry("old", minutes_ago=90),
        signature_entry("failed", err={"InstructionError": [0, "Custom"]}),
    ]
    details = {"recent": token_transaction(50_000_000)}

    handler, calls = solana_handler(signatures, details)
    transfers = await make_adapter(handler).fetch_transfers(SOLANA_WALLET, window())

    assert calls["getTransaction"] == ["recent"]
    assert [t.hash for t in transfers] == ["recent"]


@pytest.mark.asyncio
async def test_skips_failed_transactions_other_owners_and_missing_details():
    signatures = [signature_entry(s) for s in ("erred", "elsewhere", "missing")]
    details = {
        "erred": token_transaction(50_000_000, err={"InstructionError": [0, "Custom"]}),
        "elsewhere": token_transaction(50_000_000, owner=PAYER),
        "missing": None,
    }

    handler, _ = solana_handler(signatures, details)
    transfers = await make_adapter(handler).fetch_transfers(SOLANA_WALLET, window())

    assert transfers == []


@pytest.mark.asyncio
async def test_signature_list_failure_raises_upstream_unavailable():
    adapter = make_adapter(lambda request: httpx.Response(502))

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await adapter.fetch_transfers(SOLANA_WALLET, window())

    assert exc_info.value.network == Network.SOLANA


@pytest.mark.asyncio
async def test_health_check():
    handler, _ = solana_handler([], {})
    assert await make_adapter(handler).health_check() is True
    assert await make_adapter(lambda request: httpx.Response(503)).health_check() is False
