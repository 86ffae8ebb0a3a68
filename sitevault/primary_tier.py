"""
Fast key-value primary tier with a fixed byte quota.
Writes that would overflow the quota raise CapacityExceeded so the store can fall back.
"""

from pathlib import Path
from typing import Dict, List, Optional

from .errors import CapacityExceeded
from .interfaces import StorageTier
from .journal import Journal
from .logger import get_logger
from .models import TierName


class PrimaryTier(StorageTier):
    """In-memory setItem/getItem store, optionally journaled to disk."""

    tier_name = TierName.PRIMARY

    def __init__(self, max_bytes: int = 5 * 1024 * 1024, journal_dir: Optional[str] = None,
                 debug: bool = False, config=None):
        # Use config values if available, otherwise use parameters
        if config is not None:
            self.max_bytes = config.primary_tier.max_bytes
            journal_enabled = config.primary_tier.journal_enabled
            max_segment_size_mb = config.primary_tier.max_segment_size_mb
        else:
            self.max_bytes = max_bytes
            journal_enabled = journal_dir is not None
            max_segment_size_mb = 16

        self.items: Dict[str, bytes] = {}
        self.used_bytes = 0
        self.debug = debug
        self.logger = get_logger("PrimaryTier")

        self.journal: Optional[Journal] = None
        if journal_enabled and journal_dir is not None:
            self.journal = Journal(Path(journal_dir), "primary", max_segment_size_mb)
            self._recover_from_journal()

    def _recover_from_journal(self):
        """Rebuild the key-value state from journal segments."""
        recovered = self.journal.recover_state()
        if not recovered:
            self.logger.info("Primary tier: No journal data to recover")
            return

        self.items = recovered
        self.used_bytes = sum(self._entry_size(k, v) for k, v in recovered.items())
        self.journal.compact(self.items)
        self.logger.info(f"Primary tier recovered {len(self.items)} items ({self.used_bytes:,} bytes) from journal")

    @staticmethod
    def _entry_size(key: str, value: bytes) -> int:
        return len(key.encode('utf-8')) + len(value)

    @property
    def available_bytes(self) -> int:
        return self.max_bytes - self.used_bytes

    def set_item(self, key: str, value: bytes):
        """Store value under key. The previous value survives a rejected write."""
        previous = self.items.get(key)
        freed = self._entry_size(key, previous) if previous is not None else 0
        needed = self._entry_size(key, value)

        if self.used_bytes - freed + needed > self.max_bytes:
            raise CapacityExceeded(self.tier_name.value, needed, self.available_bytes + freed)

        if self.journal is not None:
            self.journal.write_set(key, value)

        self.items[key] = value
        self.used_bytes += needed - freed
        self.logger.debug(f"Stored {key} ({needed:,} bytes, {self.used_bytes:,}/{self.max_bytes:,} used)")

    def get_item(self, key: str) -> Optional[bytes]:
        return self.items.get(key)

    def remove_item(self, key: str) -> bool:
        value = self.items.pop(key, None)
        if value is None:
            return False

        if self.journal is not None:
            self.journal.write_remove(key)
        self.used_bytes -= self._entry_size(key, value)
        return True

    def keys(self) -> List[str]:
        return list(self.items.keys())

    async def write(self, key: str, payload: bytes) -> None:
        self.set_item(key, payload)

    async def read(self, key: str) -> Optional[bytes]:
        return self.get_item(key)

    async def discard(self, key: str) -> bool:
        return self.remove_item(key)

    async def get_stats(self) -> dict:
        stats = {
            "tier_name": self.tier_name.value,
            "total_items": len(self.items),
            "used_bytes": self.used_bytes,
            "max_bytes": self.max_bytes,
            "capacity_used_pct": (self.used_bytes / self.max_bytes) * 100 if self.max_bytes else 0.0,
        }
        if self.journal is not None:
            journal_stats = self.journal.get_stats()
            stats["journal_segments"] = journal_stats["segment_count"]
            stats["journal_size_mb"] = journal_stats["total_size_mb"]
        return stats

    async def cleanup(self):
        if self.journal is not None:
            self.journal.close()
        if self.debug:
            print("PrimaryTier: Cleanup complete")
