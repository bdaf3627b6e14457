"""
Shared fixtures for soroban_activity tests.

Addresses are derived from fixed byte patterns so every test gets valid,
checksummed strkeys without hard-coding them.
"""

from typing import Any, Callable, Optional

import pytest

from soroban_activity.codec import strkey
from soroban_activity.codec.scval import ScVal, encode_scval


class FakeTransport:
    """
    In-memory stand-in for RpcTransport.

    `handlers` maps a method name to a result, an exception instance, or a
    callable taking params and returning either.
    """

    def __init__(self, handlers: dict[str, Any], name: str = "fake-rpc") -> None:
        self.handlers = handlers
        self.name = name
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def call(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        params = params or {}
        self.calls.append((method, params))
        handler = self.handlers[method]
        outcome = handler(params) if callable(handler) else handler
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def account_a() -> str:
    return strkey.encode_account(bytes([0xAA]) * 32)


@pytest.fixture
def account_b() -> str:
    return strkey.encode_account(bytes([0xBB]) * 32)


@pytest.fixture
def account_c() -> str:
    return strkey.encode_account(bytes([0xCC]) * 32)


@pytest.fixture
def token_contract() -> str:
    return strkey.encode_contract(bytes([0x01]) * 32)


@pytest.fixture
def tx_hash() -> str:
    return "deadbeef" * 8


@pytest.fixture
def make_event(token_contract: str, tx_hash: str) -> Callable[..., dict[str, Any]]:
    """Factory for raw getEvents records built from ScVal topics/values."""

    def _make(
        topics: list[ScVal],
        value: Optional[ScVal] = None,
        event_id: str = "0000004294967296-0000000001",
        ledger: int = 1000,
        contract_id: Optional[str] = None,
        raw_topics: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        return {
            "type": "contract",
            "id": event_id,
            "ledger": ledger,
            "ledgerClosedAt": "2026-01-15T12:00:00Z",
            "contractId": contract_id or token_contract,
            "txHash": tx_hash,
            "topic": raw_topics if raw_topics is not None else [encode_scval(t) for t in topics],
            "value": encode_scval(value) if value is not None else "",
            "inSuccessfulContractCall": True,
        }

    return _make


@pytest.fixture
def fake_transport_cls() -> type:
    return FakeTransport
