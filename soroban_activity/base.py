"""
Base HTTP Source - shared plumbing for the RPC transport and the indexer client.

Provides:
- Lazy aiohttp session creation (or an injected session)
- Health tracking with degraded/unavailable thresholds
- Async context manager lifecycle
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import aiohttp

from soroban_activity.exceptions import RateLimitError, SorobanActivityError
from soroban_activity.models import SourceHealth, SourceStatus


logger = logging.getLogger(__name__)


class BaseHttpSource(ABC):
    """
    Abstract base class for upstream HTTP sources.

    Subclasses implement `name` and their request methods, and report
    outcomes through _on_success()/_on_error().
    """

    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: str = "SorobanActivity/1.0",
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._user_agent = user_agent

        self._health = SourceHealth(
            status=SourceStatus.UNKNOWN,
            last_check=datetime.utcnow(),
        )
        self._last_successful_request: Optional[datetime] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in log lines."""
        pass

    @property
    def base_url(self) -> str:
        return self._base_url

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._get_default_headers())
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "User-Agent": self._user_agent,
        }

    # ─────────────────────────────────────────────────────────────
    # Health & Error Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_success(self, latency_ms: Optional[float] = None) -> None:
        """Handle successful request."""
        self._last_successful_request = datetime.utcnow()
        self._health.consecutive_failures = 0
        self._health.last_check = self._last_successful_request
        if latency_ms is not None:
            self._health.latency_ms = latency_ms

        if self._health.status != SourceStatus.HEALTHY:
            self._health.status = SourceStatus.HEALTHY
            logger.info(f"[{self.name}] Recovered to HEALTHY status")

    def _on_error(self, error: SorobanActivityError) -> None:
        """Handle request error."""
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.utcnow()
        self._health.last_check = self._health.last_error_time

        if isinstance(error, RateLimitError):
            self._health.status = SourceStatus.RATE_LIMITED
        elif self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != SourceStatus.UNAVAILABLE:
                self._health.status = SourceStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != SourceStatus.DEGRADED:
                self._health.status = SourceStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED")

    def get_health(self) -> SourceHealth:
        """Get current health status."""
        return self._health

    def is_usable(self) -> bool:
        """Check if source can be used."""
        return self._health.is_usable()

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseHttpSource":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, url={self._base_url}, status={self._health.status.value})>"
