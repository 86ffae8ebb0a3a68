"""
Exception types raised by sitevault components.

Archive problems and storage problems are kept apart so the admin UI can tell
"shrink or fix the archive" from "storage is unavailable, try again later".
"""


class SiteVaultError(Exception):
    """Base class for all sitevault errors."""


class ArchiveFormatError(SiteVaultError):
    """The uploaded blob is not a decodable ZIP archive."""


class UploadRejected(SiteVaultError):
    """The upload failed validation before any decoding took place."""


class CapacityExceeded(SiteVaultError):
    """A tier refused a write because it would exceed its quota."""

    def __init__(self, tier: str, requested: int, available: int):
        self.tier = tier
        self.requested = requested
        self.available = available
        super().__init__(
            f"{tier} tier quota exceeded: requested {requested:,} bytes, "
            f"{available:,} bytes available"
        )


class SecondaryTierFailure(SiteVaultError):
    """The secondary tier could not complete a read or write."""


class BundleCorruptError(SiteVaultError):
    """Stored bytes could not be decoded back into a bundle."""
