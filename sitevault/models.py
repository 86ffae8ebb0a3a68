"""
Data model for uploaded site bundles and their storage receipts.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


class TierName(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class BundleKind(str, Enum):
    """Namespaces for the flat storage key space."""
    WEBSITE = "website"
    APP_FILE = "app"

    @property
    def prefix(self) -> str:
        return f"{self.value}_"


def storage_key(kind: BundleKind, bundle_id: str, name: Optional[str] = None) -> str:
    """Build the namespaced key, e.g. ``website_demo-1700000000000``."""
    key = f"{kind.prefix}{bundle_id}"
    if name:
        key = f"{key}_{name}"
    return key


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FileBundle:
    """
    An unpacked website archive.

    ``files`` maps relative paths to text content. The bundle is immutable
    once created and ``bundle_id`` is its only lookup key.
    """
    bundle_id: str
    source_file_name: str
    files: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def file_count(self) -> int:
        return len(self.files)


@dataclass(frozen=True)
class StoredFile:
    """A single uploaded app/game file kept as raw bytes."""
    name: str
    data: bytes
    mime_type: str = "application/octet-stream"
    uploaded_at: datetime = field(default_factory=_utcnow)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StorageRecord:
    """Receipt for a successful save: which tier holds the authoritative copy."""
    bundle_id: str
    key: str
    tier: TierName
    size_bytes: int
    stored_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class StoreEvent:
    """Change notification delivered to subscribed listeners."""
    key: str
    bundle_id: str
    kind: BundleKind
    tier: TierName
    size_bytes: int
