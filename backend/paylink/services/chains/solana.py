"""Solana USDC transfer adapter using the standard JSON-RPC API."""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from paylink.config import settings
from paylink.models.payment_link import Network
from paylink.services.chains.base import (
    ChainAdapter,
    TransferCandidate,
    TransferParseError,
    UpstreamUnavailable,
    scale_amount,
)

logger = logging.getLogger(__name__)

# Solana RPC commitment level used for history queries
CONFIRMED_COMMITMENT = "confirmed"

SPL_TOKEN_PROGRAM = "spl-token"
TOKEN_TRANSFER_TYPES = ("transfer", "transferChecked")


class SolanaSignatureInfo(BaseModel):
    """One entry of getSignaturesForAddress' result."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    signature: str
    slot: int
    err: Any = None
    block_time: Optional[int] = Field(default=None, alias="blockTime")


def _from_unix(block_time: int) -> datetime:
    """Unix seconds to naive UTC."""
    return datetime.fromtimestamp(block_time, tz=timezone.utc).replace(tzinfo=None)


class SolanaAdapter(ChainAdapter):
    """
    Fetches incoming USDC (SPL token) transfers for a wallet on Solana.

    Signatures older than the requested window are dropped before any
    per-transaction fetch. Transaction details are fetched with bounded
    concurrency and a failure on one signature never aborts the batch.
    """

    network = Network.SOLANA

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        usdc_mint: Optional[str] = None,
        signature_limit: Optional[int] = None,
        detail_concurrency: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ):
        super().__init__(rpc_url or settings.SOLANA_RPC_URL, client=client, timeout=timeout)
        self.usdc_mint = usdc_mint or settings.SOLANA_USDC_MINT
        self.signature_limit = signature_limit or settings.SOLANA_SIGNATURE_LIMIT
        self.detail_concurrency = detail_concurrency or settings.SOLANA_DETAIL_CONCURRENCY

    async def fetch_transfers(self, wallet_address: str, since: datetime) -> list[TransferCandidate]:
        """
        Fetch USDC transfers received by wallet_address at or after since.

        Raises:
            UpstreamUnavailable: If the signature list cannot be fetched
        """
        signatures = await self._get_recent_signatures(wallet_address, since)
        if not signatures:
            return []

        logger.debug(
            f"Inspecting {len(signatures)} Solana signatures for {wallet_address} "
            f"(concurrency={self.detail_concurrency})"
        )

        semaphore = asyncio.Semaphore(self.detail_concurrency)

        async def inspect(sig_info: SolanaSignatureInfo) -> list[TransferCandidate]:
            async with semaphore:
                try:
                    tx_detail = await self._get_transaction(sig_info.signature)
                except UpstreamUnavailable as e:
                    logger.warning(f"Skipping Solana transaction {sig_info.signature}: {e}")
                    return []

            if not tx_detail:
                return []

            try:
                transfers = self._parse_transfers(sig_info, tx_detail, wallet_address)
            except (TransferParseError, KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed Solana transaction {sig_info.signature}: {e}")
                return []

            return [transfer for transfer in transfers if transfer.timestamp >= since]

        results = await asyncio.gather(
            *(inspect(sig_info) for sig_info in signatures),
            return_exceptions=True
        )

        candidates: list[TransferCandidate] = []
        for sig_info, result in zip(signatures, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Unexpected error inspecting Solana transaction {sig_info.signature}",
                    exc_info=result
                )
                continue
            candidates.extend(result)

        return candidates

    async def health_check(self) -> bool:
        try:
            return await self._rpc("getHealth", []) == "ok"
        except UpstreamUnavailable as e:
            logger.warning(f"Solana health check failed: {e}")
            return False

    async def _get_recent_signatures(
        self, wallet_address: str, since: datetime
    ) -> list[SolanaSignatureInfo]:
        """Recent successful signatures for the wallet that fall inside the window."""
        result = await self._rpc(
            "getSignaturesForAddress",
            [wallet_address, {"limit": self.signature_limit, "commitment": CONFIRMED_COMMITMENT}],
        )
        if not isinstance(result, list):
            raise UpstreamUnavailable(self.network, "getSignaturesForAddress returned no result")

        signatures: list[SolanaSignatureInfo] = []
        for raw in result:
            try:
                sig_info = SolanaSignatureInfo.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping malformed Solana signature entry: {e}")
                continue

            if sig_info.err is not None:
                continue
            if sig_info.block_time is not None and _from_unix(sig_info.block_time) < since:
                continue
            signatures.append(sig_info)

        return signatures

    async def _get_transaction(self, signature: str) -> Optional[dict[str, Any]]:
        return await self._rpc(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": CONFIRMED_COMMITMENT,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )

    def _parse_transfers(
        self,
        sig_info: SolanaSignatureInfo,
        tx_detail: dict[str, Any],
        wallet_address: str
    ) -> list[TransferCandidate]:
        """
        Collect every USDC transfer into wallet_address within a parsed transaction.

        All candidates share the transaction signature as their hash, so at
        most one of them can ever be claimed.

        Returns:
            TransferCandidates in instruction order, outer before inner;
            empty if the transaction failed or holds no matching transfer
        """
        meta = tx_detail.get("meta") or {}
        if meta.get("err") is not None:
            return []

        message = tx_detail["transaction"]["message"]
        token_accounts = self._token_accounts(message.get("accountKeys", []), meta)

        instructions = list(message.get("instructions", []))
        for inner in meta.get("innerInstructions") or []:
            instructions.extend(inner.get("instructions", []))

        transfers: list[TransferCandidate] = []
        for instruction in instructions:
            if instruction.get("program") != SPL_TOKEN_PROGRAM:
                continue
            parsed = instruction.get("parsed")
            if not isinstance(parsed, dict) or parsed.get("type") not in TOKEN_TRANSFER_TYPES:
                continue

            info = parsed["info"]
            source = info.get("source")
            destination = info["destination"]
            destination_account = token_accounts.get(destination, {})
            source_account = token_accounts.get(source, {})

            mint = info.get("mint") or destination_account.get("mint") or source_account.get("mint")
            if mint != self.usdc_mint:
                continue

            owner = destination_account.get("owner")
            if wallet_address not in (owner, destination):
                continue

            block_time = tx_detail.get("blockTime") or sig_info.block_time
            if block_time is None:
                raise TransferParseError("transaction has no block time")

            transfers.append(TransferCandidate(
                hash=sig_info.signature,
                amount=self._instruction_amount(info),
                from_address=(
                    info.get("authority")
                    or info.get("multisigAuthority")
                    or source_account.get("owner")
                    or source
                ),
                to_address=wallet_address,
                timestamp=_from_unix(block_time),
                network=Network.SOLANA,
                block_reference=tx_detail.get("slot", sig_info.slot),
            ))

        return transfers

    @staticmethod
    def _token_accounts(account_keys: list[Any], meta: dict[str, Any]) -> dict[str, dict[str, str]]:
        """Map token account address -> {"mint", "owner"} from the token balance tables."""
        pubkeys = [
            key if isinstance(key, str) else key.get("pubkey")
            for key in account_keys
        ]

        accounts: dict[str, dict[str, str]] = {}
        for balance in (meta.get("preTokenBalances") or []) + (meta.get("postTokenBalances") or []):
            index = balance.get("accountIndex")
            if index is None or index >= len(pubkeys):
                continue
            entry = accounts.setdefault(pubkeys[index], {})
            if balance.get("mint"):
                entry["mint"] = balance["mint"]
            if balance.get("owner"):
                entry["owner"] = balance["owner"]
        return accounts

    @staticmethod
    def _instruction_amount(info: dict[str, Any]) -> Decimal:
        """Amount from transferChecked's tokenAmount, else the raw integer amount."""
        token_amount = info.get("tokenAmount")
        if token_amount:
            if token_amount.get("uiAmountString"):
                return Decimal(token_amount["uiAmountString"])
            if token_amount.get("amount") is not None:
                return scale_amount(token_amount["amount"], token_amount.get("decimals"))
            if token_amount.get("uiAmount") is not None:
                return Decimal(str(token_amount["uiAmount"]))

        if info.get("amount") is None:
            raise TransferParseError("transfer instruction carries no amount")
        return scale_amount(info["amount"])
