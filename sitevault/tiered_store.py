"""
TieredStore coordinator: one save/load interface over an ordered chain of tiers.
Writes fall through the chain only on CapacityExceeded; reads check every tier in order.
"""

from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .codec import serialize_bundle, deserialize_bundle, serialize_file, deserialize_file
from .config import get_config, VaultConfig
from .errors import CapacityExceeded, SecondaryTierFailure
from .interfaces import ChangeListener, StorageTier
from .logger import get_logger
from .models import (
    BundleKind, FileBundle, StorageRecord, StoredFile, StoreEvent, TierName, storage_key
)
from .primary_tier import PrimaryTier
from .secondary_tier import SecondaryTier


class TieredStore:
    """
    Capacity-aware bundle store:
    Primary (fast, quota-limited) -> Secondary (large, transactional)
    """

    def __init__(self, storage_path: str = None, tiers: Optional[Sequence[StorageTier]] = None,
                 debug: bool = None, config_path: str = None, config: VaultConfig = None):
        """
        Initialize the store with configuration support.

        Args:
            storage_path: Override storage path (uses config if None)
            tiers: Pre-built tier chain, tried in order (built from config if None)
            debug: Override debug flag (uses config if None)
            config_path: Path to custom config file
            config: Pre-loaded config object (takes precedence over config_path)
        """
        if config is not None:
            self.config = config
        else:
            self.config = get_config(config_path)

        self.storage_path = Path(storage_path or self.config.storage.base_path)
        self.debug = debug if debug is not None else self.config.debug.enabled
        self.logger = get_logger("TieredStore")

        if tiers is None:
            self.storage_path.mkdir(parents=True, exist_ok=True)
            tiers = [
                PrimaryTier(
                    journal_dir=str(self.storage_path / self.config.storage.journal_path),
                    debug=self.debug,
                    config=self.config
                ),
                SecondaryTier(
                    str(self.storage_path / self.config.storage.secondary_path),
                    debug=self.debug,
                    config=self.config
                )
            ]
        if not tiers:
            raise ValueError("TieredStore needs at least one tier")

        self.tiers: List[StorageTier] = list(tiers)
        self._listeners: List[ChangeListener] = []

        chain = " -> ".join(t.tier_name.value for t in self.tiers)
        self.logger.info(f"Initialized tier chain: {chain}")
        self.logger.info(f"Storage path: {self.storage_path}")

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener for successful saves. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, event: StoreEvent):
        for listener in list(self._listeners):
            try:
                await listener.on_change(event)
            except Exception as e:
                # The data is already stored; a broken listener must not turn that into a failure
                self.logger.error(f"Change listener failed for {event.key}: {e}", exc_info=True)

    async def _discard_stale_copies(self, key: str, winner: StorageTier):
        """
        Remove key from every tier except winner.

        A copy in an earlier tier would shadow the new one on reads, so failing
        to drop it propagates. Copies in later tiers are already hidden behind
        winner; an unavailable secondary store only leaves an orphan there.
        """
        after_winner = False
        for other in self.tiers:
            if other is winner:
                after_winner = True
                continue
            try:
                removed = await other.discard(key)
            except SecondaryTierFailure as e:
                if not after_winner:
                    raise
                self.logger.warning(f"Could not drop stale copy of {key} from {other.tier_name.value} tier: {e}")
                continue
            if removed:
                self.logger.debug(f"Removed stale copy of {key} from {other.tier_name.value} tier")

    async def _write_through_chain(self, key: str, payload: bytes) -> TierName:
        """Write to the first tier with room, then drop stale copies from the others."""
        last_error: Optional[CapacityExceeded] = None

        for tier in self.tiers:
            try:
                await tier.write(key, payload)
            except CapacityExceeded as e:
                self.logger.warning(f"{tier.tier_name.value} tier full for {key}, trying next tier: {e}")
                last_error = e
                continue

            self.logger.info(f"Saved {key} to {tier.tier_name.value} tier")
            await self._discard_stale_copies(key, tier)
            return tier.tier_name

        self.logger.error(f"No tier could hold {key} ({len(payload):,} bytes)")
        raise last_error

    async def _read_through_chain(self, key: str) -> Optional[bytes]:
        for tier in self.tiers:
            payload = await tier.read(key)
            if payload is not None:
                self.logger.debug(f"Found {key} in {tier.tier_name.value} tier")
                return payload
        return None

    async def save(self, bundle_id: str, bundle: FileBundle) -> StorageRecord:
        """
        Persist bundle under bundle_id. Saving the same id again overwrites it.
        Only CapacityExceeded moves the write to the next tier; other errors propagate.
        """
        if bundle.bundle_id != bundle_id:
            raise ValueError(f"Bundle id mismatch: {bundle.bundle_id!r} saved as {bundle_id!r}")

        key = storage_key(BundleKind.WEBSITE, bundle_id)
        payload = serialize_bundle(bundle)
        self.logger.info(f"Saving {key}: {bundle.file_count} files, {len(payload) / 1024 / 1024:.2f} MB")

        tier = await self._write_through_chain(key, payload)
        record = StorageRecord(bundle_id=bundle_id, key=key, tier=tier, size_bytes=len(payload))

        await self._notify(StoreEvent(key, bundle_id, BundleKind.WEBSITE, tier, len(payload)))
        return record

    async def load(self, bundle_id: str) -> Optional[FileBundle]:
        """Look in every tier in order. None means the bundle is in no tier."""
        key = storage_key(BundleKind.WEBSITE, bundle_id)
        payload = await self._read_through_chain(key)
        if payload is None:
            self.logger.warning(f"Bundle not found: {bundle_id}")
            return None
        return deserialize_bundle(payload)

    async def save_file(self, bundle_id: str, stored: StoredFile) -> StorageRecord:
        """Persist a single uploaded app/game file."""
        key = storage_key(BundleKind.APP_FILE, bundle_id, stored.name)
        payload = serialize_file(stored)
        self.logger.info(f"Saving {key}: {stored.size:,} bytes")

        tier = await self._write_through_chain(key, payload)
        record = StorageRecord(bundle_id=bundle_id, key=key, tier=tier, size_bytes=len(payload))

        await self._notify(StoreEvent(key, bundle_id, BundleKind.APP_FILE, tier, len(payload)))
        return record

    async def load_file(self, bundle_id: str, name: str) -> Optional[StoredFile]:
        key = storage_key(BundleKind.APP_FILE, bundle_id, name)
        payload = await self._read_through_chain(key)
        if payload is None:
            self.logger.warning(f"File not found: {key}")
            return None
        return deserialize_file(payload)

    async def locate(self, bundle_id: str) -> Optional[TierName]:
        """Which tier currently holds the website bundle, if any."""
        key = storage_key(BundleKind.WEBSITE, bundle_id)
        for tier in self.tiers:
            if await tier.read(key) is not None:
                return tier.tier_name
        return None

    async def get_stats(self) -> dict:
        """Get statistics across all tiers."""
        stats = {"storage_path": str(self.storage_path), "listeners": len(self._listeners)}
        for tier in self.tiers:
            stats[f"{tier.tier_name.value}_tier"] = await tier.get_stats()
        return stats

    async def cleanup(self):
        """Cleanup resources."""
        for tier in self.tiers:
            await tier.cleanup()
        self.logger.info("Cleanup complete")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()
