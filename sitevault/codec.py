"""
Arrow IPC serialization for bundles and stored files.

Both tiers persist the same opaque byte payload, so a bundle is serialized
exactly once per save and its size is simply the payload length.
"""

from datetime import datetime

import pyarrow as pa
import pyarrow.ipc as ipc

from .errors import BundleCorruptError
from .models import FileBundle, StoredFile


BUNDLE_SCHEMA = pa.schema([
    ('path', pa.string()),
    ('content', pa.string())
])

FILE_SCHEMA = pa.schema([
    ('name', pa.string()),
    ('mime_type', pa.string()),
    ('data', pa.binary())
])


def _write_stream(batch: pa.RecordBatch) -> bytes:
    sink = pa.BufferOutputStream()
    with ipc.new_stream(sink, batch.schema) as writer:
        writer.write_batch(batch)
    return sink.getvalue().to_pybytes()


def _read_stream(payload: bytes) -> pa.Table:
    try:
        reader = ipc.open_stream(pa.py_buffer(payload))
        return reader.read_all()
    except (pa.ArrowException, OSError) as e:
        raise BundleCorruptError(f"Stored payload is not a valid Arrow stream: {e}") from e


def serialize_bundle(bundle: FileBundle) -> bytes:
    """Encode a bundle as a single-batch Arrow IPC stream."""
    paths = list(bundle.files.keys())
    schema = BUNDLE_SCHEMA.with_metadata({
        'bundle_id': bundle.bundle_id,
        'source_file_name': bundle.source_file_name,
        'created_at': bundle.created_at.isoformat(),
    })
    batch = pa.RecordBatch.from_arrays([
        pa.array(paths, type=pa.string()),
        pa.array([bundle.files[p] for p in paths], type=pa.string())
    ], schema=schema)
    return _write_stream(batch)


def deserialize_bundle(payload: bytes) -> FileBundle:
    """Decode bytes produced by serialize_bundle."""
    table = _read_stream(payload)
    metadata = table.schema.metadata or {}
    if b'bundle_id' not in metadata or table.schema.names != BUNDLE_SCHEMA.names:
        raise BundleCorruptError("Payload does not contain a file bundle")

    paths = table.column('path').to_pylist()
    contents = table.column('content').to_pylist()
    return FileBundle(
        bundle_id=metadata[b'bundle_id'].decode('utf-8'),
        source_file_name=metadata.get(b'source_file_name', b'').decode('utf-8'),
        files=dict(zip(paths, contents)),
        created_at=datetime.fromisoformat(metadata[b'created_at'].decode('utf-8')),
    )


def serialize_file(stored: StoredFile) -> bytes:
    """Encode an uploaded app/game file as a one-row Arrow IPC stream."""
    schema = FILE_SCHEMA.with_metadata({'uploaded_at': stored.uploaded_at.isoformat()})
    batch = pa.RecordBatch.from_arrays([
        pa.array([stored.name], type=pa.string()),
        pa.array([stored.mime_type], type=pa.string()),
        pa.array([stored.data], type=pa.binary())
    ], schema=schema)
    return _write_stream(batch)


def deserialize_file(payload: bytes) -> StoredFile:
    table = _read_stream(payload)
    if table.schema.names != FILE_SCHEMA.names or table.num_rows != 1:
        raise BundleCorruptError("Payload does not contain a stored file")

    row = table.to_pylist()[0]
    metadata = table.schema.metadata or {}
    return StoredFile(
        name=row['name'],
        data=row['data'],
        mime_type=row['mime_type'],
        uploaded_at=datetime.fromisoformat(metadata[b'uploaded_at'].decode('utf-8')),
    )
