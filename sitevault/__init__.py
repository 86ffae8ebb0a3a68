"""
sitevault: storage for uploaded website bundles.

A two-tier, capacity-aware store for ZIP-uploaded static sites:
- Primary Tier: Fast key-value store with a fixed byte quota (journaled)
- Secondary Tier: Larger transactional parquet store

Writes go to the primary tier and fall back to the secondary tier only when
the primary is out of room. Reads check primary, then secondary.
"""

from .tiered_store import TieredStore
from .interfaces import StorageTier, ChangeListener
from .primary_tier import PrimaryTier
from .secondary_tier import SecondaryTier, SecondaryTransaction
from .models import FileBundle, StorageRecord, StoredFile, StoreEvent, TierName, BundleKind
from .ingest import decode_data_url, generate_bundle_id, unpack
from .resolver import resolve, list_files, guess_content_type, VirtualSite
from .uploader import upload_website, upload_app_file, UploadResult
from .errors import (
    SiteVaultError,
    ArchiveFormatError,
    UploadRejected,
    CapacityExceeded,
    SecondaryTierFailure,
    BundleCorruptError
)

__all__ = [
    'TieredStore',
    'StorageTier',
    'ChangeListener',
    'PrimaryTier',
    'SecondaryTier',
    'SecondaryTransaction',
    'FileBundle',
    'StorageRecord',
    'StoredFile',
    'StoreEvent',
    'TierName',
    'BundleKind',
    'decode_data_url',
    'generate_bundle_id',
    'unpack',
    'resolve',
    'list_files',
    'guess_content_type',
    'VirtualSite',
    'upload_website',
    'upload_app_file',
    'UploadResult',
    'SiteVaultError',
    'ArchiveFormatError',
    'UploadRejected',
    'CapacityExceeded',
    'SecondaryTierFailure',
    'BundleCorruptError'
]
