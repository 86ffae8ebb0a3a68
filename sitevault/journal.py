"""
Journal for the primary tier using Arrow IPC streams.
Every set/remove is appended and fsynced so the key-value state survives restarts.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional, Iterator
import pyarrow as pa
import pyarrow.ipc as ipc

from .logger import get_logger


JOURNAL_SCHEMA = pa.schema([
    ('op', pa.string()),
    ('key', pa.string()),
    ('value', pa.binary())
])

OP_SET = "set"
OP_REMOVE = "remove"


class JournalSegment:
    """A single journal segment file using Arrow IPC stream format."""

    def __init__(self, file_path: Path):
        self.file_path = file_path
        self.file_handle = None
        self.writer = None
        self.reader = None
        self.is_open = False
        self.logger = get_logger("JournalSegment")

    def open_for_write(self, schema: pa.Schema):
        """Open journal segment for writing."""
        self.file_handle = open(self.file_path, 'wb')
        self.writer = ipc.new_stream(self.file_handle, schema)
        self.is_open = True

    def write_batch(self, batch: pa.RecordBatch):
        """Write a batch to the segment and fsync."""
        if not self.is_open or not self.writer:
            raise RuntimeError("Journal segment not open for writing")

        self.writer.write_batch(batch)

        # Force sync to disk (durability guarantee)
        self.file_handle.flush()
        os.fsync(self.file_handle.fileno())

    def open_for_read(self):
        """Open journal segment for reading."""
        if not self.file_path.exists():
            return

        self.file_handle = open(self.file_path, 'rb')
        try:
            self.reader = ipc.open_stream(self.file_handle)
        except pa.ArrowInvalid as e:
            # An empty or torn header means nothing was committed to this segment
            self.logger.warning(f"Journal segment {self.file_path} has no readable stream: {e}")
            return
        self.is_open = True

    def read_batches(self) -> Iterator[pa.RecordBatch]:
        """Read all batches from the segment."""
        if not self.is_open or not self.reader:
            return

        try:
            for batch in self.reader:
                yield batch
        except (pa.ArrowInvalid, OSError) as e:
            # Partial trailing write from a crash; everything before it is intact
            self.logger.warning(f"Journal segment {self.file_path} read stopped early: {e}")
            return

    def close(self):
        """Close segment and cleanup resources."""
        if self.writer:
            self.writer.close()
            self.writer = None

        self.reader = None

        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None

        self.is_open = False

    def delete(self):
        """Delete the segment file."""
        self.close()
        if self.file_path.exists():
            self.file_path.unlink()


class Journal:
    """Manages the journal segments of one primary tier."""

    def __init__(self, journal_dir: Path, name: str, max_segment_size_mb: int = 16):
        self.journal_dir = Path(journal_dir)
        self.name = name
        self.journal_dir.mkdir(parents=True, exist_ok=True)

        self.active_segment: Optional[JournalSegment] = None
        self.segment_counter = 0
        self.max_segment_size_mb = max_segment_size_mb
        self.logger = get_logger("Journal")

    def _get_segment_path(self, segment_id: int) -> Path:
        return self.journal_dir / f"{self.name}_journal_{segment_id:06d}.arrow"

    def _discover_existing_segments(self) -> List[int]:
        """Find existing journal segments."""
        segment_ids = []
        for file_path in self.journal_dir.glob(f"{self.name}_journal_*.arrow"):
            try:
                segment_ids.append(int(file_path.stem.split('_')[-1]))
            except ValueError:
                continue

        return sorted(segment_ids)

    def create_new_segment(self):
        """Create a new active segment after the highest existing id."""
        if self.active_segment:
            self.active_segment.close()

        existing_segments = self._discover_existing_segments()
        self.segment_counter = max(existing_segments) + 1 if existing_segments else 0

        self.active_segment = JournalSegment(self._get_segment_path(self.segment_counter))
        self.active_segment.open_for_write(JOURNAL_SCHEMA)

    def _append(self, op: str, key: str, value: Optional[bytes]):
        if not self.active_segment:
            self.create_new_segment()

        current_size_mb = self.active_segment.file_path.stat().st_size / (1024 * 1024)
        if current_size_mb > self.max_segment_size_mb:
            self.create_new_segment()

        batch = pa.RecordBatch.from_arrays([
            pa.array([op], type=pa.string()),
            pa.array([key], type=pa.string()),
            pa.array([value], type=pa.binary())
        ], schema=JOURNAL_SCHEMA)
        self.active_segment.write_batch(batch)

    def write_set(self, key: str, value: bytes):
        self._append(OP_SET, key, value)

    def write_remove(self, key: str):
        self._append(OP_REMOVE, key, None)

    def recover_state(self) -> Dict[str, bytes]:
        """Replay every segment in order; the last entry for a key wins."""
        state: Dict[str, bytes] = {}

        for segment_id in self._discover_existing_segments():
            segment = JournalSegment(self._get_segment_path(segment_id))
            try:
                segment.open_for_read()
                for batch in segment.read_batches():
                    for entry in batch.to_pylist():
                        if entry['op'] == OP_SET:
                            state[entry['key']] = entry['value']
                        elif entry['op'] == OP_REMOVE:
                            state.pop(entry['key'], None)
            finally:
                segment.close()

        return state

    def compact(self, state: Dict[str, bytes]):
        """Rewrite the journal as one segment holding only the live state."""
        old_segments = self._discover_existing_segments()

        self.create_new_segment()
        for key, value in state.items():
            self.write_set(key, value)

        for segment_id in old_segments:
            if segment_id != self.segment_counter:
                JournalSegment(self._get_segment_path(segment_id)).delete()

        self.logger.info(f"Compacted {len(old_segments)} journal segments into segment {self.segment_counter}")

    def close(self):
        """Close journal and active segment."""
        if self.active_segment:
            self.active_segment.close()
            self.active_segment = None

    def get_stats(self) -> dict:
        existing_segments = self._discover_existing_segments()
        total_size_mb = sum(
            self._get_segment_path(segment_id).stat().st_size
            for segment_id in existing_segments
            if self._get_segment_path(segment_id).exists()
        ) / (1024 * 1024)

        return {
            "segment_count": len(existing_segments),
            "total_size_mb": total_size_mb,
            "active_segment": self.segment_counter if self.active_segment else None
        }
