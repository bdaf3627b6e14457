"""
Metadata Storage - derived token metadata and tracked assets.

Raw events are never stored. Only derived metadata (symbol, name, decimals)
and the user's tracked-asset list are kept, serialized as JSON in an
injected key-value store and namespaced per network.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from soroban_activity.models import TokenMetadata


logger = logging.getLogger(__name__)


METADATA_CACHE_KEY = "scan_token_metadata_cache"
TRACKED_ASSETS_KEY = "scan_tracked_assets"

SAC_DECIMALS = 7


class KeyValueStore(Protocol):
    """Minimal get/set store, e.g. a browser-style localStorage or Redis wrapper."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryStore:
    """Dict-backed KeyValueStore."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


@dataclass(frozen=True)
class TrackedAsset:
    contract_id: str
    symbol: Optional[str] = None
    name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"contract_id": self.contract_id, "symbol": self.symbol, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackedAsset":
        return cls(
            contract_id=data["contract_id"],
            symbol=data.get("symbol"),
            name=data.get("name"),
        )


class MetadataCache:
    """
    Network-scoped metadata cache and tracked-asset list.

    Unreadable stored values are treated as empty; the cache never raises
    on corrupt data.
    """

    def __init__(self, store: Optional[KeyValueStore] = None) -> None:
        self._store = store if store is not None else InMemoryStore()

    @staticmethod
    def metadata_key(network: str) -> str:
        return f"{METADATA_CACHE_KEY}_{network}"

    @staticmethod
    def tracked_assets_key(network: str) -> str:
        return f"{TRACKED_ASSETS_KEY}_{network}"

    def _load(self, key: str, default: Any) -> Any:
        raw = self._store.get(key)
        if not raw:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning(f"[storage] Ignoring unreadable value at {key}: {e}")
            return default

    # ─────────────────────────────────────────────────────────────
    # Token Metadata
    # ─────────────────────────────────────────────────────────────

    def get_metadata(self, contract_id: str, network: str) -> Optional[TokenMetadata]:
        entries = self._load(self.metadata_key(network), {})
        data = entries.get(contract_id) if isinstance(entries, dict) else None
        return TokenMetadata.from_dict(data) if data else None

    def set_metadata(self, contract_id: str, metadata: TokenMetadata, network: str) -> None:
        key = self.metadata_key(network)
        entries = self._load(key, {})
        if not isinstance(entries, dict):
            entries = {}
        entries[contract_id] = metadata.to_dict()
        self._store.set(key, json.dumps(entries))

    def cache_sac_metadata(
        self,
        contract_id: str,
        sac_symbol: Optional[str],
        sac_name: Optional[str],
        network: str,
    ) -> bool:
        """
        Cache metadata learned from a SAC event topic, if nothing is cached yet.

        Returns:
            True if an entry was written
        """
        if not contract_id or not sac_symbol:
            return False
        if self.get_metadata(contract_id, network) is not None:
            return False
        self.set_metadata(
            contract_id,
            TokenMetadata(symbol=sac_symbol, name=sac_name or sac_symbol, decimals=SAC_DECIMALS),
            network,
        )
        return True

    # ─────────────────────────────────────────────────────────────
    # Tracked Assets
    # ─────────────────────────────────────────────────────────────

    def get_tracked_assets(self, network: str) -> list[TrackedAsset]:
        stored = self._load(self.tracked_assets_key(network), [])
        if not isinstance(stored, list):
            return []
        return [TrackedAsset.from_dict(item) for item in stored if isinstance(item, dict) and "contract_id" in item]

    def add_tracked_asset(
        self,
        contract_id: str,
        network: str,
        symbol: Optional[str] = None,
        name: Optional[str] = None,
    ) -> bool:
        """Add an asset unless already tracked. Returns True if added."""
        assets = self.get_tracked_assets(network)
        if any(asset.contract_id == contract_id for asset in assets):
            return False
        assets.append(TrackedAsset(contract_id, symbol, name))
        self._save_tracked(assets, network)
        return True

    def remove_tracked_asset(self, contract_id: str, network: str) -> None:
        assets = [a for a in self.get_tracked_assets(network) if a.contract_id != contract_id]
        self._save_tracked(assets, network)

    def _save_tracked(self, assets: list[TrackedAsset], network: str) -> None:
        self._store.set(
            self.tracked_assets_key(network),
            json.dumps([asset.to_dict() for asset in assets]),
        )
