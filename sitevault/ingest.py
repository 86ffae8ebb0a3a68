"""
Archive ingestion: data URL -> ZIP bytes -> FileBundle, entirely in memory.
"""

import asyncio
import base64
import binascii
import io
import re
import time
import zipfile
import zlib
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .errors import ArchiveFormatError
from .logger import get_logger
from .models import FileBundle


ProgressCallback = Callable[[int, int], None]

_DATA_URL_RE = re.compile(r'^data:(?P<mime>[^;,]*)(?P<params>(;[^;,]*)*),(?P<data>.*)$', re.DOTALL)
_WHITESPACE_RE = re.compile(r"[ \t\r\n\f\v]+")


def decode_data_url(data_url: str) -> bytes:
    """
    Decode a ``data:<mime>;base64,<payload>`` string (or bare base64) to bytes.
    """
    match = _DATA_URL_RE.match(data_url.strip())
    if match:
        if ';base64' not in match.group('params'):
            raise ArchiveFormatError("Data URL is not base64 encoded")
        encoded = match.group('data')
    else:
        encoded = data_url.strip()

    try:
        # Line-wrapped (MIME style) base64 is still valid input
        return base64.b64decode(_WHITESPACE_RE.sub("", encoded), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ArchiveFormatError(f"Upload is not valid base64: {e}") from e


def generate_bundle_id(title: str, now: Optional[float] = None) -> str:
    """Slugify title and append the epoch milliseconds, e.g. ``demo-1700000000000``."""
    slug = re.sub(r'[^a-z0-9]+', '-', title.lower()).strip('-')
    millis = int((now if now is not None else time.time()) * 1000)
    return f"{slug}-{millis}"


def normalize_entry_path(name: str) -> str:
    """Forward slashes only, no leading slash. A leading ``./`` is kept as stored."""
    return name.replace('\\', '/').lstrip('/')


async def unpack(blob: bytes, bundle_id: str, source_file_name: str,
                 progress: Optional[ProgressCallback] = None) -> FileBundle:
    """
    Open blob as a ZIP archive and read every non-directory entry as text.

    An archive without files yields an empty bundle; the caller decides
    whether that is acceptable.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(blob))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
        raise ArchiveFormatError(f"{source_file_name} is not a valid ZIP archive: {e}") from e

    logger = get_logger("Ingest")
    files: Dict[str, str] = {}
    with archive:
        entries = [info for info in archive.infolist() if not info.is_dir()]
        logger.info(f"Unpacking {source_file_name}: {len(entries)} files")

        for done, info in enumerate(entries, start=1):
            try:
                raw = archive.read(info)
            except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, OSError, EOFError) as e:
                raise ArchiveFormatError(f"Cannot extract {info.filename} from {source_file_name}: {e}") from e

            path = normalize_entry_path(info.filename)
            files[path] = raw.decode('utf-8', errors='replace')
            logger.debug(f"Extracted {path} ({info.file_size:,} bytes)")

            if progress is not None:
                progress(done, len(entries))
            # Let other tasks run between entries
            await asyncio.sleep(0)

    return FileBundle(
        bundle_id=bundle_id,
        source_file_name=source_file_name,
        files=files,
        created_at=datetime.now(timezone.utc),
    )
