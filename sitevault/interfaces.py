"""
Storage tier and change listener interfaces.
Focus on clarity and direct functionality.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .models import StoreEvent, TierName


class StorageTier(ABC):
    """Base interface for all storage tiers."""

    tier_name: TierName

    @abstractmethod
    async def write(self, key: str, payload: bytes) -> None:
        """
        Store payload under key, replacing any previous value.
        Raises CapacityExceeded if the tier cannot hold it.
        """
        pass

    @abstractmethod
    async def read(self, key: str) -> Optional[bytes]:
        """Return the payload stored under key, or None if absent."""
        pass

    @abstractmethod
    async def discard(self, key: str) -> bool:
        """Drop key from this tier. Returns True if something was removed."""
        pass

    @abstractmethod
    async def get_stats(self) -> dict:
        """Get tier statistics (record count, bytes used, etc.)."""
        pass

    async def cleanup(self):
        """Release tier resources. Default implementation does nothing."""
        pass


class ChangeListener(ABC):
    """Called after a bundle has been durably stored."""

    @abstractmethod
    async def on_change(self, event: StoreEvent) -> None:
        pass
