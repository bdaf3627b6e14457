"""
Input validation helpers.
"""

import re
from typing import Any, Iterable, Optional

from soroban_activity.codec import strkey


TX_HASH_PATTERN = re.compile(r"[a-fA-F0-9]{64}")


def is_valid_address(address: Optional[str]) -> bool:
    """True for a well-formed G, C, M, B or L address with a valid checksum."""
    if not address or not isinstance(address, str):
        return False
    kind = strkey.PREFIX_KINDS.get(address[0])
    if kind is None:
        return False
    return strkey.is_valid(kind, address)


def is_account_address(address: Optional[str]) -> bool:
    return isinstance(address, str) and address.startswith("G")


def is_contract_address(address: Optional[str]) -> bool:
    return isinstance(address, str) and address.startswith("C")


def is_liquidity_pool_address(address: Optional[str]) -> bool:
    return isinstance(address, str) and address.startswith("L")


def is_valid_tx_hash(tx_hash: Optional[str]) -> bool:
    """64 hex characters."""
    if not tx_hash or not isinstance(tx_hash, str):
        return False
    return TX_HASH_PATTERN.fullmatch(tx_hash) is not None


def extract_contract_ids(events: Iterable[Any]) -> list[str]:
    """Unique contract ids in first-seen order."""
    seen: dict[str, None] = {}
    for event in events:
        contract_id = event.get("contract_id") if isinstance(event, dict) else getattr(event, "contract_id", None)
        if contract_id:
            seen.setdefault(contract_id, None)
    return list(seen)
