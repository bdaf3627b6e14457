"""
RPC Transport - JSON-RPC over HTTP with bounded retry.

Failure classification:
- Timeout, connection error, HTTP 5xx, HTTP 429 -> TransportError (retried)
- Other HTTP 4xx                                -> TransportError (not retried)
- JSON-RPC `error` object                       -> ProtocolError (not retried,
  not counted against health since the endpoint answered)
- JSON-RPC error code -32001                    -> ProcessingLimitError, so the
  caller can narrow its query instead of repeating it
"""

import asyncio
import itertools
import logging
import random
import time
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from soroban_activity.base import BaseHttpSource
from soroban_activity.config import RetryPolicy
from soroban_activity.exceptions import (
    PROCESSING_LIMIT_CODE,
    ProcessingLimitError,
    ProtocolError,
    RateLimitError,
    RpcTimeoutError,
    TransportError,
)


logger = logging.getLogger(__name__)


JITTER_RATIO = 0.25


def compute_backoff_delay(
    policy: RetryPolicy,
    attempt: int,
    rand: Callable[[], float] = random.random,
) -> float:
    """
    Delay in milliseconds before retry number `attempt` (0-based).

    Never exceeds backoff_max_ms * (1 + JITTER_RATIO).
    """
    base = min(policy.backoff_ms * (2 ** attempt), policy.backoff_max_ms)
    return base + base * JITTER_RATIO * rand()


def protocol_error_from(error: Any, method: str, source: str) -> ProtocolError:
    if not isinstance(error, dict):
        error = {"message": str(error)}
    code = error.get("code")
    message = error.get("message") or str(error)
    error_cls = ProcessingLimitError if code == PROCESSING_LIMIT_CODE else ProtocolError
    return error_cls(
        message=f"RPC error: [{code}] {message}",
        code=code,
        method=method,
        source=source,
        context={"data": error.get("data")} if error.get("data") is not None else None,
    )


class RpcTransport(BaseHttpSource):
    """
    JSON-RPC transport bound to one endpoint and one immutable RetryPolicy.

    Usage:
        async with RpcTransport(url, RetryPolicy()) as transport:
            result = await transport.call("getLatestLedger")
    """

    def __init__(
        self,
        url: str,
        policy: Optional[RetryPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
        name: str = "rpc",
        user_agent: str = "SorobanActivity/1.0",
        rand: Callable[[], float] = random.random,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        super().__init__(url, session=session, user_agent=user_agent)
        self._policy = policy or RetryPolicy()
        self._name = name
        self._rand = rand
        self._sleep = sleep
        self._request_ids = itertools.count(1)

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return self._base_url

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def call(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        Execute a JSON-RPC call with retry.

        Returns:
            The `result` member of the response

        Raises:
            TransportError: After retries are exhausted, or immediately if not retryable
            ProtocolError: On a JSON-RPC error response (ProcessingLimitError for -32001)
        """
        last_error: Optional[TransportError] = None
        attempts = self._policy.max_retries + 1

        for attempt in range(attempts):
            try:
                result = await self._post_once(method, params)
                return result

            except TransportError as e:
                self._on_error(e)
                if not e.retryable:
                    raise
                last_error = e
                if attempt + 1 >= attempts:
                    break

                delay_ms = compute_backoff_delay(self._policy, attempt, self._rand)
                logger.warning(
                    f"[{self.name}] {method} retry {attempt + 1}/{self._policy.max_retries} "
                    f"in {delay_ms:.0f}ms: {e.message}"
                )
                await self._sleep(delay_ms / 1000)

        logger.error(f"[{self.name}] {method} failed after {attempts} attempts: {last_error}")
        raise last_error

    async def _post_once(self, method: str, params: Optional[dict[str, Any]]) -> Any:
        """Issue a single POST and classify the outcome."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params if params is not None else {},
        }
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.post(
                self._base_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self._policy.timeout_seconds),
            ) as response:
                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        source=self.name,
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                        url=self._base_url,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise TransportError(
                        message=f"HTTP {response.status}",
                        source=self.name,
                        status_code=response.status,
                        response_body=body[:500],
                        url=self._base_url,
                        retryable=response.status >= 500,
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise TransportError(
                        message="Response is not valid JSON",
                        source=self.name,
                        status_code=response.status,
                        url=self._base_url,
                        original_error=e,
                    )

        except asyncio.TimeoutError as e:
            raise RpcTimeoutError(
                message=f"{method} timed out after {self._policy.timeout_ms}ms",
                source=self.name,
                timeout_ms=self._policy.timeout_ms,
                url=self._base_url,
                original_error=e,
            )
        except aiohttp.ClientError as e:
            raise TransportError(
                message=f"Connection error: {e}",
                source=self.name,
                url=self._base_url,
                original_error=e,
            )

        if not isinstance(data, dict):
            raise TransportError(
                message="Unexpected JSON-RPC response shape",
                source=self.name,
                url=self._base_url,
                retryable=False,
            )

        if data.get("error"):
            raise protocol_error_from(data["error"], method, self.name)

        self._on_success((time.time() - start_time) * 1000)
        return data.get("result")
