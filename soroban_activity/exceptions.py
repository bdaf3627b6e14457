"""
Soroban Activity Exceptions - Custom exception hierarchy.

Transport and protocol errors propagate to the caller. Decode and
non-conforming-event errors are recovered locally by the normalizer.
"""

from datetime import datetime
from typing import Any, Optional


PROCESSING_LIMIT_CODE = -32001


class SorobanActivityError(Exception):
    """Base exception for all activity client errors."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.source = source
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source": self.source,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.source:
            parts.append(f"[source={self.source}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class TransportError(SorobanActivityError):
    """HTTP-level failure: connection error, 5xx, 429 or timeout."""

    retryable = True

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message, source, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.url = url
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "url": self.url,
            "retryable": self.retryable,
        })
        return data


class RpcTimeoutError(TransportError):
    """Request exceeded the configured timeout and was aborted."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        url: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, source, url=url, original_error=original_error)
        self.timeout_ms = timeout_ms

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["timeout_ms"] = self.timeout_ms
        return data


class RateLimitError(TransportError):
    """Upstream answered HTTP 429."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
        url: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, source, status_code=429, url=url, original_error=original_error)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class ProtocolError(SorobanActivityError):
    """JSON-RPC application error (an `error` object in the response)."""

    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        method: Optional[str] = None,
        source: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source, original_error, context)
        self.code = code
        self.method = method

    @property
    def is_processing_limit(self) -> bool:
        return self.code == PROCESSING_LIMIT_CODE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "code": self.code,
            "method": self.method,
        })
        return data


class ProcessingLimitError(ProtocolError):
    """Query exceeded the node's processing limit; narrow it instead of retrying."""


class DecodeError(SorobanActivityError):
    """Malformed or truncated binary value."""

    def __init__(
        self,
        message: str,
        offset: Optional[int] = None,
        type_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, "codec", original_error)
        self.offset = offset
        self.type_name = type_name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "offset": self.offset,
            "type_name": self.type_name,
        })
        return data


class NonConformingEventError(SorobanActivityError):
    """Event matches a token event type but fails topic shape validation."""

    def __init__(
        self,
        message: str,
        event_id: Optional[str] = None,
        event_type: Optional[str] = None,
        topic_index: Optional[int] = None,
    ) -> None:
        super().__init__(message, "parser")
        self.event_id = event_id
        self.event_type = event_type
        self.topic_index = topic_index

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "event_id": self.event_id,
            "event_type": self.event_type,
            "topic_index": self.topic_index,
        })
        return data


class PartialFailureError(SorobanActivityError):
    """One of several parallel sub-queries failed; the rest returned data."""

    def __init__(
        self,
        message: str,
        failed_queries: Optional[list[str]] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, "service", original_error)
        self.failed_queries = failed_queries or []

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["failed_queries"] = self.failed_queries
        return data


class IndexerError(SorobanActivityError):
    """Failure talking to the secondary indexed source."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, "indexer", original_error)
        self.status_code = status_code
        self.url = url

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "url": self.url,
        })
        return data


class ConfigurationError(SorobanActivityError):
    """Invalid client configuration."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, "config", original_error)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data


class InvalidAddressError(SorobanActivityError, ValueError):
    """Caller passed an address of the wrong kind or with a bad checksum."""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        expected_kind: Optional[str] = None,
    ) -> None:
        super().__init__(message, "validation")
        self.address = address
        self.expected_kind = expected_kind
