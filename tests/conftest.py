"""Shared fixtures: isolated log directory, small-quota config and a tiered store per test."""

import base64
import io
import json
import zipfile

import pytest

from sitevault.config import VaultConfig
from sitevault.logger import VaultLogger
from sitevault.tiered_store import TieredStore


PRIMARY_QUOTA = 64 * 1024


@pytest.fixture(scope="session", autouse=True)
def _logging(tmp_path_factory):
    VaultLogger.setup(log_dir=str(tmp_path_factory.mktemp("logs")), log_level="DEBUG")


def make_zip(files, dirs=()):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for directory in dirs:
            archive.writestr(zipfile.ZipInfo(directory), "")
        for path, content in files.items():
            archive.writestr(path, content)
    return buffer.getvalue()


def to_data_url(blob):
    return "data:application/zip;base64," + base64.b64encode(blob).decode("ascii")


@pytest.fixture
def config(tmp_path):
    custom = {
        "storage": {"base_path": str(tmp_path / "store")},
        "primary_tier": {"max_bytes": PRIMARY_QUOTA},
        "secondary_tier": {"max_storage_mb": 16, "max_thread_workers": 2},
        "upload": {"max_archive_mb": 1, "max_app_file_mb": 1},
    }
    path = tmp_path / "sitevault_test.json"
    path.write_text(json.dumps(custom))
    return VaultConfig(str(path))


@pytest.fixture
async def store(config, tmp_path):
    """A store with a 64KB primary tier, so mid-sized bundles fall back."""
    tiered = TieredStore(storage_path=str(tmp_path / "store"), config=config)
    yield tiered
    await tiered.cleanup()
