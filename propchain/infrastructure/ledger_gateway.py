"""Resilient Ledger Gateway - JSON-RPC client for the ledger relay with retry, backoff and error mapping.

Invariants:
    - Rate limits (429): exponential backoff with jitter, respects Retry-After header
    - Transient errors (5xx, connection, timeout): max_retries retries with backoff
    - Client errors (4xx except 429) and JSON-RPC errors: immediate failure, no retry
    - A 200 whose body is not a JSON-RPC object counts as transient: retried, then
      outcome unknown on submit and ReadError on reads
    - submit() that loses contact after sending raises FinalityError (outcome unknown),
      never SubmissionError: the relay may have accepted the call
    - await_finality() polls until a final status or the wait bound; never blocks forever
    - Reverted execution raises TransactionRevertedError; the effect did not happen

Design Decisions:
    - Wrapper over raw httpx.AsyncClient: isolates retry logic from the orchestrators
    - ±25% jitter on backoff: prevents thundering herd on a shared relay
    - Integers travel as 0x-hex strings; strings and addresses pass through as-is
    - The relay deduplicates on idempotency_key, which makes resubmission safe
"""

import asyncio
import itertools
import logging
import random
from datetime import datetime, timezone
from typing import Any

import httpx

from propchain.core.errors import (
    ErrorContext,
    FinalityError,
    ReadError,
    SubmissionError,
    TransactionRevertedError,
)
from propchain.core.ledger_calls import CallSpec, ConfirmedResult, PendingRef, QuerySpec

logger = logging.getLogger(__name__)

FINAL_STATUSES = frozenset({"ACCEPTED_ON_L2", "ACCEPTED_ON_L1"})
REJECTED_STATUS = "REJECTED"
REVERTED_STATUS = "REVERTED"


class _RpcFailure(Exception):
    """Relay answered with an error; the request was not applied."""


class _TransportExhausted(Exception):
    """Relay unreachable after all retries; whether it received the request is unknown."""


class ResilientLedgerGateway:
    """LedgerGateway over the relay's JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        *,
        api_key: str | None = None,
        max_retries: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 10_000,
        request_timeout_seconds: float = 30.0,
        finality_timeout_seconds: float = 120.0,
        poll_interval_ms: int = 2000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = httpx.AsyncClient(
            timeout=request_timeout_seconds, headers=headers, transport=transport,
        )
        self.rpc_url = rpc_url
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.finality_timeout_seconds = finality_timeout_seconds
        self.poll_interval_ms = poll_interval_ms
        self._ids = itertools.count(1)

    async def submit(self, call: CallSpec) -> PendingRef:
        context = ErrorContext(operation=call.operation)
        params = {
            "contract_address": call.contract_address,
            "entrypoint": call.entrypoint,
            "calldata": [_encode_arg(a) for a in call.args],
            "idempotency_key": call.idempotency_key,
        }
        try:
            result = await self._rpc("ledger_submitCall", params)
        except _RpcFailure as e:
            raise SubmissionError(f"{call.operation} rejected: {e}", context=context)
        except _TransportExhausted as e:
            raise FinalityError(
                f"{call.operation} submission outcome unknown: {e}", context=context,
            )

        tx_ref = result.get("transaction_hash") if isinstance(result, dict) else None
        if not tx_ref:
            raise FinalityError(
                f"{call.operation} submitted but relay returned no transaction hash",
                context=context,
            )
        logger.info(
            "Ledger call submitted",
            extra={"operation": call.operation, "tx_ref": tx_ref},
        )
        return PendingRef(tx_ref, call)

    async def await_finality(self, pending: PendingRef) -> ConfirmedResult:
        """Poll the transaction status until final, reverted, rejected, or timed out."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.finality_timeout_seconds
        context = ErrorContext(operation=pending.call.operation, tx_ref=pending.tx_ref)

        while True:
            receipt = None
            try:
                receipt = await self._rpc(
                    "ledger_getTransactionStatus", {"transaction_hash": pending.tx_ref},
                )
            except (_RpcFailure, _TransportExhausted) as e:
                logger.warning(
                    f"Status poll failed, will retry: {e}",
                    extra={"tx_ref": pending.tx_ref},
                )

            if isinstance(receipt, dict):
                finality = receipt.get("finality_status")
                if finality == REJECTED_STATUS:
                    raise SubmissionError(
                        f"Transaction {pending.tx_ref} rejected by the ledger",
                        context=context,
                    )
                if finality in FINAL_STATUSES:
                    if receipt.get("execution_status") == REVERTED_STATUS:
                        raise TransactionRevertedError(
                            pending.tx_ref, receipt.get("revert_reason"), context,
                        )
                    return ConfirmedResult(
                        tx_ref=pending.tx_ref,
                        return_values=receipt.get("return_values") or {},
                        block_number=receipt.get("block_number"),
                        block_timestamp=_parse_timestamp(receipt.get("block_timestamp")),
                    )

            if loop.time() >= deadline:
                raise FinalityError(
                    f"Transaction {pending.tx_ref} not final after "
                    f"{self.finality_timeout_seconds}s",
                    pending.tx_ref, context,
                )
            await asyncio.sleep(self.poll_interval_ms / 1000)

    async def read(self, query: QuerySpec) -> Any:
        params = {
            "contract_address": query.contract_address,
            "entrypoint": query.entrypoint,
            "calldata": [_encode_arg(a) for a in query.args],
        }
        try:
            return await self._rpc("ledger_call", params)
        except (_RpcFailure, _TransportExhausted) as e:
            raise ReadError(
                f"Ledger read {query.operation} failed: {e}",
                ErrorContext(operation=query.operation),
            )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _rpc(self, method: str, params: dict) -> Any:
        """POST one JSON-RPC request with retry on transient failures."""
        for attempt in range(self.max_retries + 1):
            payload = {
                "jsonrpc": "2.0", "id": next(self._ids),
                "method": method, "params": params,
            }
            try:
                response = await self.client.post(self.rpc_url, json=payload)
            except httpx.TransportError as e:
                await self._handle_transient_error(e, attempt)
                continue

            if response.status_code == 429:
                await self._handle_rate_limit(response, attempt)
                continue
            if response.status_code >= 500:
                await self._handle_transient_error(
                    f"HTTP {response.status_code}", attempt,
                )
                continue
            if response.status_code >= 400:
                raise _RpcFailure(f"HTTP {response.status_code}: {response.text[:200]}")

            try:
                body = response.json()
            except ValueError:
                body = None
            if not isinstance(body, dict):
                await self._handle_transient_error("malformed JSON-RPC response", attempt)
                continue
            error = body.get("error")
            if error:
                if not isinstance(error, dict):
                    raise _RpcFailure(str(error))
                raise _RpcFailure(
                    f"{error.get('message', 'unknown error')} (code {error.get('code')})",
                )
            if attempt:
                logger.info(
                    f"Ledger RPC {method} succeeded after retry",
                    extra={"attempt": attempt + 1},
                )
            return body.get("result")
        raise _TransportExhausted(f"{method} gave no answer")

    async def _handle_rate_limit(self, response: httpx.Response, attempt: int) -> None:
        retry_after_ms = _extract_retry_after(response)
        if attempt >= self.max_retries:
            raise _TransportExhausted("rate limit exceeded after retries")
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            f"Ledger rate limit hit, retry after {delay}ms (attempt {attempt + 1})",
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(self, e: object, attempt: int) -> None:
        if attempt >= self.max_retries:
            raise _TransportExhausted(
                f"transient failure after {self.max_retries} retries: {e}",
            )
        delay = self._backoff(attempt)
        logger.warning(f"Ledger transient error, retry after {delay}ms: {e}")
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311


def _encode_arg(value: Any) -> Any:
    if isinstance(value, bool):
        return "0x1" if value else "0x0"
    if isinstance(value, int):
        return hex(value)
    return value


def _extract_retry_after(response: httpx.Response) -> int | None:
    """Retry-After header in milliseconds."""
    val = response.headers.get("retry-after")
    if val and val.isdigit():
        return int(val) * 1000
    return None


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = int(value, 16) if value.startswith("0x") else int(value)
    return datetime.fromtimestamp(value, tz=timezone.utc)
