"""
Larger, slower secondary tier backed by parquet files.
Writes go through transactions: stage every record, then swap all of them into place or none.
"""

import asyncio
import os
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import quote

import pyarrow as pa
import pyarrow.parquet as pq

from .errors import SecondaryTierFailure
from .interfaces import StorageTier
from .logger import get_logger
from .models import TierName


RECORD_SCHEMA = pa.schema([
    ('key', pa.string()),
    ('payload', pa.binary()),
    ('committed_at', pa.timestamp('us', tz='UTC'))
])


class SecondaryTransaction:
    """
    A unit of work against the secondary tier.

    Puts and deletes are buffered until commit. Used as an async context
    manager it commits on a clean exit and aborts if the block raised.
    """

    def __init__(self, tier: 'SecondaryTier'):
        self.tier = tier
        self._puts: Dict[str, bytes] = {}
        self._deletes: Set[str] = set()
        self.committed = False
        self.aborted = False

    def _check_open(self):
        if self.committed or self.aborted:
            raise RuntimeError("Transaction already finished")

    def put(self, key: str, payload: bytes):
        self._check_open()
        self._deletes.discard(key)
        self._puts[key] = payload

    def delete(self, key: str):
        self._check_open()
        self._puts.pop(key, None)
        self._deletes.add(key)

    async def get(self, key: str) -> Optional[bytes]:
        if key in self._puts:
            return self._puts[key]
        if key in self._deletes:
            return None
        return await self.tier._read_record(key)

    async def commit(self):
        self._check_open()
        await self.tier._commit(self._puts, self._deletes)
        self.committed = True

    def abort(self):
        if not self.committed:
            self._puts.clear()
            self._deletes.clear()
            self.aborted = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None and not (self.committed or self.aborted):
            await self.commit()
        else:
            self.abort()


class SecondaryTier(StorageTier):
    """Persistent object store keyed by storage key, one parquet file per record."""

    tier_name = TierName.SECONDARY

    def __init__(self, storage_path: str, max_storage_mb: int = 1024, debug: bool = False, config=None):
        if config is not None:
            self.max_storage_bytes = config.secondary_tier.max_storage_mb * 1024 * 1024
            self.compression = config.secondary_tier.compression
            self.staging_enabled = config.secondary_tier.staging_enabled
            max_workers = config.secondary_tier.max_thread_workers
        else:
            self.max_storage_bytes = max_storage_mb * 1024 * 1024
            self.compression = "snappy"
            self.staging_enabled = True
            max_workers = 4

        self.storage_path = Path(storage_path)
        self.records_path = self.storage_path / "records"
        self.staging_path = self.storage_path / "staging" if self.staging_enabled else self.records_path
        self.debug = debug
        self.logger = get_logger("SecondaryTier")

        self._pool = ThreadPoolExecutor(max_workers=max_workers)
        self._ready = False
        self.logger.info(f"Initialized secondary tier at {self.storage_path} with {max_workers} workers")

    def _ensure_ready(self):
        """Create the store layout on first use; an unusable path is a tier failure."""
        if self._ready:
            return
        try:
            self.records_path.mkdir(parents=True, exist_ok=True)
            self.staging_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SecondaryTierFailure(f"Secondary store unavailable at {self.storage_path}: {e}") from e
        self._ready = True

    def _record_path(self, key: str) -> Path:
        return self.records_path / f"{quote(key, safe='')}.parquet"

    def transaction(self) -> SecondaryTransaction:
        """Open a new read/write transaction."""
        self._ensure_ready()
        return SecondaryTransaction(self)

    def _used_bytes(self) -> int:
        return sum(f.stat().st_size for f in self.records_path.glob("*.parquet"))

    def _write_record(self, path: Path, key: str, payload: bytes):
        table = pa.Table.from_arrays([
            pa.array([key], type=pa.string()),
            pa.array([payload], type=pa.binary()),
            pa.array([datetime.now(timezone.utc)], type=pa.timestamp('us', tz='UTC'))
        ], schema=RECORD_SCHEMA)
        pq.write_table(table, path, compression=self.compression)

    def _load_record(self, path: Path) -> bytes:
        table = pq.read_table(path, columns=['payload'])
        return table.column('payload')[0].as_py()

    def _discard_staged(self, staged: List[Tuple[Path, Path]]):
        for staging_file, _ in staged:
            staging_file.unlink(missing_ok=True)

    def _apply(self, staged: List[Tuple[Path, Path]], touched: List[Path]):
        """
        Swap staged files in. Every record being replaced or deleted is first
        moved aside; if any move fails the previous records are put back.
        """
        backups: List[Tuple[Path, Path]] = []
        moved: List[Path] = []
        try:
            for final_file in touched:
                if final_file.exists():
                    backup = self.staging_path / f"{uuid.uuid4().hex}.backup"
                    os.replace(final_file, backup)
                    backups.append((backup, final_file))
            for staging_file, final_file in staged:
                os.replace(staging_file, final_file)
                moved.append(final_file)
        except OSError:
            for final_file in moved:
                final_file.unlink(missing_ok=True)
            for backup, final_file in backups:
                os.replace(backup, final_file)
            raise

        for backup, _ in backups:
            try:
                backup.unlink()
            except OSError as e:
                self.logger.warning(f"Committed, but could not remove backup {backup}: {e}")

    async def _commit(self, puts: Dict[str, bytes], deletes: Set[str]):
        """
        Two-step commit:
        1. Write every record to the staging area (async) and check capacity
           against the staged file sizes
        2. Move replaced/deleted records aside and staged files into place
        Any failure removes the staged files and restores the previous
        records, leaving the store unchanged.
        """
        self._ensure_ready()
        loop = asyncio.get_running_loop()
        touched = [self._record_path(k) for k in set(puts) | deletes]

        staged: List[Tuple[Path, Path]] = []
        try:
            for key, payload in puts.items():
                staging_file = self.staging_path / f"{uuid.uuid4().hex}.staging"
                staged.append((staging_file, self._record_path(key)))
                await loop.run_in_executor(self._pool, self._write_record, staging_file, key, payload)
            self.logger.debug(f"Staged {len(staged)} records")

            # Both sides in on-disk parquet bytes
            incoming = sum(staging_file.stat().st_size for staging_file, _ in staged)
            replaced = sum(f.stat().st_size for f in touched if f.exists())
            used = await loop.run_in_executor(self._pool, self._used_bytes)
            if used - replaced + incoming > self.max_storage_bytes:
                self._discard_staged(staged)
                raise SecondaryTierFailure(
                    f"Secondary store full: {incoming:,} bytes requested, "
                    f"{self.max_storage_bytes - used + replaced:,} bytes available"
                )

            await loop.run_in_executor(self._pool, self._apply, staged, touched)
        except (OSError, pa.ArrowException) as e:
            self._discard_staged(staged)
            self.logger.error(f"Secondary transaction failed: {e}")
            raise SecondaryTierFailure(f"Secondary store write failed: {e}") from e

        self.logger.info(f"Committed {len(puts)} puts, {len(deletes)} deletes ({incoming:,} bytes)")

    async def _read_record(self, key: str) -> Optional[bytes]:
        self._ensure_ready()
        path = self._record_path(key)
        if not path.exists():
            return None
        try:
            return await asyncio.get_running_loop().run_in_executor(self._pool, self._load_record, path)
        except (OSError, pa.ArrowException) as e:
            self.logger.error(f"Secondary read failed for {key}: {e}")
            raise SecondaryTierFailure(f"Secondary store read failed for {key}: {e}") from e

    async def write(self, key: str, payload: bytes) -> None:
        async with self.transaction() as txn:
            txn.put(key, payload)

    async def read(self, key: str) -> Optional[bytes]:
        return await self.transaction().get(key)

    async def discard(self, key: str) -> bool:
        self._ensure_ready()
        existed = self._record_path(key).exists()
        if existed:
            async with self.transaction() as txn:
                txn.delete(key)
        return existed

    async def get_stats(self) -> dict:
        record_files = list(self.records_path.glob("*.parquet")) if self.records_path.exists() else []
        used = sum(f.stat().st_size for f in record_files)
        return {
            "tier_name": self.tier_name.value,
            "total_items": len(record_files),
            "used_bytes": used,
            "max_bytes": self.max_storage_bytes,
            "storage_size_mb": used / (1024 * 1024),
            "storage_path": str(self.storage_path)
        }

    async def cleanup(self):
        self._pool.shutdown(wait=True)
        self.logger.info("Shut down secondary tier thread pool")
        if self.debug:
            print("SecondaryTier: Cleanup complete")
