"""Ledger gateway: read views, account resources, and finality waits over REST.

A ``LedgerGateway`` is constructed explicitly from a ``MarketConfig`` and
passed to every repository and to the orchestrator, so tests can swap in a
double or an ``httpx.MockTransport``. There is no module-level client.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from types import TracebackType
from typing import Any, Final

import httpx

from NFT_Market.config import MarketConfig
from NFT_Market.ledger._retry import read_with_retry
from NFT_Market.models.health import LedgerInfo
from NFT_Market.models.transactions import TransactionHandle, TransactionStatus
from NFT_Market.services.rate_limiter import RateLimiter
from NFT_Market.utils.exceptions import (
    DecodeError,
    FinalityTimeoutError,
    LedgerRequestError,
    NetworkError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

GATEWAY_SOURCE: Final[str] = "gateway"
PENDING_TRANSACTION_TYPE: Final[str] = "pending_transaction"
HTTP_NOT_FOUND: Final[int] = 404
HTTP_TOO_MANY_REQUESTS: Final[int] = 429
HTTP_SERVER_ERROR: Final[int] = 500
HTTP_CLIENT_ERROR: Final[int] = 400


class LedgerGateway:
    """Async client for the subset of the ledger node API the marketplace needs.

    Usage::

        async with LedgerGateway(config) as gateway:
            auctions = await gateway.view(function_id, [], [])
            status = await gateway.wait_for_transaction(handle)
    """

    def __init__(
        self,
        config: MarketConfig,
        *,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.node_url,
            timeout=httpx.Timeout(config.request_timeout_seconds, connect=5.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            headers={"Accept": "application/json"},
        )
        self._rate_limiter = rate_limiter or RateLimiter(
            max_concurrent=config.max_concurrent_reads,
            requests_per_second=config.requests_per_second,
        )

        logger.info(
            "LedgerGateway initialized: network=%s node=%s",
            config.network,
            config.node_url,
        )

    @property
    def config(self) -> MarketConfig:
        return self._config

    async def aclose(self) -> None:
        """Close the underlying httpx client if the gateway created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> LedgerGateway:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def view(
        self,
        function_id: str,
        type_arguments: list[str],
        arguments: list[str],
    ) -> list[Any]:
        """Invoke a read-only module view and return its positional results.

        Raises:
            NetworkError: If the node stays unreachable after retries.
            LedgerRequestError: If the node rejects the call (e.g. a view abort).
            DecodeError: If the response is not a JSON array.
        """
        payload = {
            "function": function_id,
            "type_arguments": list(type_arguments),
            "arguments": list(arguments),
        }
        function_name = function_id.rsplit("::", 1)[-1]
        result = await read_with_retry(
            lambda: self._request_json("POST", "/view", json=payload),
            rate_limiter=self._rate_limiter,
            label=f"view({function_name})",
        )
        if not isinstance(result, list):
            raise DecodeError(
                f"view {function_name} returned {type(result).__name__}, expected a list",
                field=function_name,
                source=GATEWAY_SOURCE,
            )
        logger.debug("view %s returned %d values", function_name, len(result))
        return result

    async def get_account_resource(self, address: str, resource_type: str) -> dict[str, Any]:
        """Fetch the ``data`` mapping of a named resource stored under *address*.

        Raises:
            NetworkError: If the node stays unreachable after retries.
            LedgerRequestError: If the account or resource does not exist.
            DecodeError: If the response has no ``data`` mapping.
        """
        result = await read_with_retry(
            lambda: self._request_json("GET", f"/accounts/{address}/resource/{resource_type}"),
            rate_limiter=self._rate_limiter,
            label=f"resource({resource_type.rsplit('::', 1)[-1]})",
        )
        data = result.get("data") if isinstance(result, dict) else None
        if not isinstance(data, dict):
            raise DecodeError(
                f"Resource {resource_type} has no data mapping",
                field="data",
                source=GATEWAY_SOURCE,
            )
        return data

    async def get_ledger_info(self) -> LedgerInfo:
        """Fetch chain id and ledger version from the node index endpoint."""
        result = await read_with_retry(
            lambda: self._request_json("GET", "/"),
            rate_limiter=self._rate_limiter,
            label="ledger_info",
            max_retries=1,
        )
        if not isinstance(result, dict):
            raise DecodeError("Ledger info is not an object", source=GATEWAY_SOURCE)
        try:
            timestamp_us = int(result.get("ledger_timestamp", 0))
            return LedgerInfo(
                chain_id=int(result["chain_id"]),
                ledger_version=int(result["ledger_version"]),
                ledger_timestamp=(
                    datetime.datetime.fromtimestamp(timestamp_us / 1_000_000, tz=datetime.UTC)
                    if timestamp_us
                    else None
                ),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"Malformed ledger info: {exc}", source=GATEWAY_SOURCE) from exc

    # ------------------------------------------------------------------
    # Finality
    # ------------------------------------------------------------------

    async def wait_for_transaction(self, handle: TransactionHandle) -> TransactionStatus:
        """Wait until *handle* is committed and return its outcome.

        Polls the node every ``finality_poll_interval_seconds``. The wait is
        unbounded unless ``finality_timeout_seconds`` is configured.

        Raises:
            NetworkError: If polling keeps failing after retries.
            FinalityTimeoutError: If the optional timeout elapses.
        """
        timeout = self._config.finality_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                return await self._poll_until_committed(handle)
        except TimeoutError as exc:
            raise FinalityTimeoutError(
                f"Transaction {handle.hash} not final after {timeout}s",
                reason="timeout",
                transaction_hash=handle.hash,
                source=GATEWAY_SOURCE,
            ) from exc

    async def _poll_until_committed(self, handle: TransactionHandle) -> TransactionStatus:
        interval = self._config.finality_poll_interval_seconds
        polls = 0
        while True:
            polls += 1
            transaction = await read_with_retry(
                lambda: self._fetch_transaction(handle.hash),
                rate_limiter=self._rate_limiter,
                label=f"transaction({handle.hash[:10]})",
            )
            if transaction is not None and transaction.get("type") != PENDING_TRANSACTION_TYPE:
                status = TransactionStatus(
                    hash=handle.hash,
                    success=bool(transaction.get("success", False)),
                    vm_status=str(transaction.get("vm_status", "")),
                    version=_optional_int(transaction.get("version")),
                )
                logger.info(
                    "Transaction %s final after %d polls: success=%s vm_status=%s",
                    handle.hash,
                    polls,
                    status.success,
                    status.vm_status,
                )
                return status

            logger.debug("Transaction %s pending (poll %d)", handle.hash, polls)
            await asyncio.sleep(interval)

    async def _fetch_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        """Return the transaction JSON, or None while the node does not know it yet."""
        try:
            result = await self._request_json("GET", f"/transactions/by_hash/{tx_hash}")
        except LedgerRequestError as exc:
            if exc.http_status == HTTP_NOT_FOUND:
                return None
            raise
        if not isinstance(result, dict):
            raise DecodeError("Transaction response is not an object", source=GATEWAY_SOURCE)
        return result

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> Any:  # noqa: ANN401
        """Send one request and map transport and status failures to domain errors."""
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise NetworkError(
                f"{method} {path} timed out", source=GATEWAY_SOURCE
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(
                f"{method} {path} failed: {exc}", source=GATEWAY_SOURCE
            ) from exc

        status = response.status_code
        if status >= HTTP_SERVER_ERROR or status == HTTP_TOO_MANY_REQUESTS:
            raise NetworkError(
                f"{method} {path} returned HTTP {status}",
                source=GATEWAY_SOURCE,
                http_status=status,
            )
        if status >= HTTP_CLIENT_ERROR:
            raise LedgerRequestError(
                f"{method} {path} rejected with HTTP {status}: {_error_message(response)}",
                source=GATEWAY_SOURCE,
                http_status=status,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(
                f"{method} {path} returned invalid JSON", source=GATEWAY_SOURCE
            ) from exc


def _error_message(response: httpx.Response) -> str:
    """Extract the node's error message from a failed response, if any."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error_code") or body)
    return str(body)


def _optional_int(value: object) -> int | None:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None
