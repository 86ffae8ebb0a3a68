"""
Virtual file lookup inside a stored bundle, standing in for a static file server.
"""

import mimetypes
from typing import TYPE_CHECKING, List, Optional

from .models import FileBundle

if TYPE_CHECKING:
    from .tiered_store import TieredStore


INDEX_CANDIDATES = ("index.html", "./index.html")
ROOT_PATHS = ("", "/", "./")


def resolve(bundle: FileBundle, requested_path: str) -> Optional[str]:
    """
    Return the content stored at requested_path, or None.

    The site root ("" or "/") falls back to index.html, stored either bare or
    with a ``./`` prefix depending on how the archive was packed.
    """
    if requested_path in bundle.files:
        return bundle.files[requested_path]

    if requested_path in ROOT_PATHS:
        for candidate in INDEX_CANDIDATES:
            if candidate in bundle.files:
                return bundle.files[candidate]

    return None


def list_files(bundle: FileBundle) -> List[str]:
    return sorted(bundle.files)


def guess_content_type(path: str) -> str:
    """Content type by extension, for whatever HTTP layer serves resolved files."""
    if not path or path in ROOT_PATHS:
        return "text/html"
    content_type, _ = mimetypes.guess_type(path)
    return content_type or "application/octet-stream"


class VirtualSite:
    """A website bundle addressed by id. Every lookup goes back to the store."""

    def __init__(self, store: 'TieredStore', bundle_id: str):
        self.store = store
        self.bundle_id = bundle_id

    async def get_file(self, path: str) -> Optional[str]:
        bundle = await self.store.load(self.bundle_id)
        if bundle is None:
            return None
        return resolve(bundle, path)

    async def list_files(self) -> List[str]:
        bundle = await self.store.load(self.bundle_id)
        return list_files(bundle) if bundle is not None else []
