"""Solana JSON-RPC verifier for fee payments and bundle payout proofs."""

from __future__ import annotations

from itertools import count
from typing import Any

import httpx
import structlog
from tenacity.wait import wait_base

from payouts.domain.errors import ErrorCode
from payouts.resilience.retry import resilient_api_call
from payouts.verifiers.base import TransferCheck

logger = structlog.get_logger()


class RpcError(Exception):
    """The RPC node answered with a JSON-RPC error object."""


def iter_system_transfers(transaction: dict[str, Any]) -> list[dict[str, Any]]:
    """Return the ``info`` of every parsed system-program transfer instruction."""
    message = (transaction.get("transaction") or {}).get("message") or {}
    transfers = []
    for ix in message.get("instructions", []):
        parsed = ix.get("parsed")
        if ix.get("program") == "system" and isinstance(parsed, dict):
            if parsed.get("type") == "transfer":
                transfers.append(parsed.get("info") or {})
    return transfers


class SolanaPaymentVerifier:
    """Verify transactions with ``getTransaction`` at ``confirmed`` commitment.

    Args:
        rpc_url: JSON-RPC endpoint.
        http: Shared async HTTP client; one is created if omitted.
        retry_wait: Tenacity wait strategy override.
    """

    def __init__(
        self,
        rpc_url: str,
        http: httpx.AsyncClient | None = None,
        *,
        retry_wait: wait_base | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._http = http or httpx.AsyncClient(timeout=15.0)
        self._ids = count(1)
        self._post = resilient_api_call("solana_rpc", wait=retry_wait)(self._post_once)

    async def _post_once(self, body: dict[str, Any]) -> httpx.Response:
        return await self._http.post(self._rpc_url, json=body)

    async def get_transaction(self, tx_ref: str) -> dict[str, Any] | None:
        """Fetch a parsed transaction, or ``None`` if the node does not know it.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status.
            RpcError: If the node returned a JSON-RPC error.
        """
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "getTransaction",
            "params": [
                tx_ref,
                {
                    "encoding": "jsonParsed",
                    "commitment": "confirmed",
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        }
        response = await self._post(body)
        response.raise_for_status()
        payload = response.json()
        if payload.get("error"):
            raise RpcError(payload["error"].get("message", "RPC error"))
        result: dict[str, Any] | None = payload.get("result")
        return result

    async def _fetch_checked(self, tx_ref: str) -> tuple[TransferCheck, dict[str, Any] | None]:
        try:
            tx = await self.get_transaction(tx_ref)
        except (httpx.HTTPError, RpcError, ValueError) as exc:
            logger.warning("Transaction verification failed", tx_ref=tx_ref, error=str(exc))
            return (
                TransferCheck(
                    tx_ref=tx_ref,
                    error=ErrorCode.TX_VERIFY_ERROR,
                    message=f"Failed to verify transaction: {exc}",
                ),
                None,
            )

        if tx is None:
            check = TransferCheck(
                tx_ref=tx_ref,
                error=ErrorCode.TX_NOT_FOUND,
                message="Transaction not found or not confirmed",
            )
        elif (tx.get("meta") or {}).get("err"):
            check = TransferCheck(
                tx_ref=tx_ref, error=ErrorCode.TX_FAILED, message="Transaction failed on-chain"
            )
        else:
            check = TransferCheck(tx_ref=tx_ref)
        return check, tx

    async def verify_confirmed(self, tx_ref: str) -> TransferCheck:
        """Check that a payout transaction exists, is confirmed and succeeded."""
        check, _ = await self._fetch_checked(tx_ref)
        return check

    async def verify_transfer(self, tx_ref: str, recipient: str, amount: int) -> TransferCheck:
        """Check that *tx_ref* contains a system transfer of *amount* to *recipient*.

        Every failure is reported as ``INVALID_PAYMENT`` with a specific message.
        """
        check, tx = await self._fetch_checked(tx_ref)
        if not check.ok or tx is None:
            return check.model_copy(update={"error": ErrorCode.INVALID_PAYMENT})

        for info in iter_system_transfers(tx):
            if info.get("destination") == recipient and info.get("lamports") == amount:
                return TransferCheck(
                    tx_ref=tx_ref,
                    source=info.get("source"),
                    destination=info.get("destination"),
                    amount=amount,
                )

        return TransferCheck(
            tx_ref=tx_ref,
            error=ErrorCode.INVALID_PAYMENT,
            message="No matching transfer found in transaction",
        )

    async def aclose(self) -> None:
        await self._http.aclose()
