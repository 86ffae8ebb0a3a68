"""
Admin upload workflow: validate, decode, unpack, then persist through the tiered store.
"""

import mimetypes
from dataclasses import dataclass
from typing import Optional

from .config import VaultConfig
from .errors import UploadRejected
from .ingest import ProgressCallback, decode_data_url, generate_bundle_id, unpack
from .logger import get_logger
from .models import StoredFile, TierName
from .tiered_store import TieredStore


@dataclass(frozen=True)
class UploadResult:
    bundle_id: str
    file_name: str
    file_count: int
    url: str
    tier: TierName
    size_bytes: int


def format_file_size(num_bytes: int) -> str:
    """Human readable size using 1024 steps, e.g. ``1.5 KB``."""
    if num_bytes == 0:
        return "0 Bytes"
    sizes = ["Bytes", "KB", "MB", "GB"]
    i = 0
    while i < len(sizes) - 1 and num_bytes >= 1024 ** (i + 1):
        i += 1
    value = round(num_bytes / 1024 ** i, 2)
    return f"{value:g} {sizes[i]}"


def validate_archive_upload(file_name: str, size_bytes: Optional[int], config: VaultConfig):
    """Reject anything that is not a .zip or is over the archive size limit."""
    if not file_name.lower().endswith('.zip'):
        raise UploadRejected(f"{file_name} is not a ZIP file")

    limit = config.upload.max_archive_mb * 1024 * 1024
    if size_bytes is not None and size_bytes > limit:
        raise UploadRejected(
            f"{file_name} is {format_file_size(size_bytes)}, limit is {config.upload.max_archive_mb}MB"
        )


def site_url(bundle_id: str, config: VaultConfig) -> str:
    return f"{config.upload.site_url_prefix}{bundle_id}/"


async def upload_website(store: TieredStore, data_url: str, title: str, file_name: str,
                         size_bytes: Optional[int] = None,
                         progress: Optional[ProgressCallback] = None) -> UploadResult:
    """
    Turn an uploaded ZIP data URL into a stored website bundle.

    Unpacking completes before anything is written, so a bad archive never
    reaches the store.
    """
    logger = get_logger("Uploader")
    config = store.config

    validate_archive_upload(file_name, size_bytes, config)
    blob = decode_data_url(data_url)
    validate_archive_upload(file_name, len(blob), config)

    bundle_id = generate_bundle_id(title)
    logger.info(f"Processing website upload {file_name} as {bundle_id} ({format_file_size(len(blob))})")

    bundle = await unpack(blob, bundle_id, file_name, progress=progress)
    record = await store.save(bundle_id, bundle)

    result = UploadResult(
        bundle_id=bundle_id,
        file_name=file_name,
        file_count=bundle.file_count,
        url=site_url(bundle_id, config),
        tier=record.tier,
        size_bytes=record.size_bytes,
    )
    logger.info(f"Website {bundle_id} stored in {record.tier.value} tier: {result.file_count} files at {result.url}")
    return result


async def upload_app_file(store: TieredStore, data_url: str, title: str, file_name: str,
                          mime_type: Optional[str] = None) -> UploadResult:
    """Store a single app/game file as-is under the ``app_`` namespace."""
    logger = get_logger("Uploader")
    config = store.config

    data = decode_data_url(data_url)
    limit = config.upload.max_app_file_mb * 1024 * 1024
    if len(data) > limit:
        raise UploadRejected(
            f"{file_name} is {format_file_size(len(data))}, limit is {config.upload.max_app_file_mb}MB"
        )

    if mime_type is None:
        mime_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"

    bundle_id = generate_bundle_id(title)
    stored = StoredFile(name=file_name, data=data, mime_type=mime_type)
    record = await store.save_file(bundle_id, stored)

    logger.info(f"App file {file_name} ({format_file_size(len(data))}) stored in {record.tier.value} tier")
    return UploadResult(
        bundle_id=bundle_id,
        file_name=file_name,
        file_count=1,
        url=f"{config.upload.app_url_prefix}{bundle_id}/{file_name}",
        tier=record.tier,
        size_bytes=record.size_bytes,
    )
