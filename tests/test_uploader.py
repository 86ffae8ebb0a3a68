import base64

import pytest

from sitevault.errors import ArchiveFormatError, UploadRejected
from sitevault.models import TierName
from sitevault.uploader import format_file_size, upload_app_file, upload_website, validate_archive_upload

from conftest import make_zip, to_data_url


@pytest.mark.parametrize("num_bytes,expected", [
    (0, "0 Bytes"),
    (512, "512 Bytes"),
    (1024, "1 KB"),
    (1536, "1.5 KB"),
    (5 * 1024 * 1024, "5 MB"),
    (3 * 1024 ** 3, "3 GB"),
])
def test_format_file_size(num_bytes, expected):
    assert format_file_size(num_bytes) == expected


class TestValidateArchiveUpload:
    def test_accepts_zip_under_limit(self, config):
        validate_archive_upload("site.ZIP", 1024, config)

    def test_rejects_other_extensions(self, config):
        with pytest.raises(UploadRejected):
            validate_archive_upload("site.tar.gz", 1024, config)

    def test_rejects_oversized_archive(self, config):
        with pytest.raises(UploadRejected):
            validate_archive_upload("site.zip", 2 * 1024 * 1024, config)

    def test_unknown_size_is_not_rejected(self, config):
        validate_archive_upload("site.zip", None, config)


class TestUploadWebsite:
    @pytest.mark.asyncio
    async def test_upload_stores_bundle(self, store):
        blob = make_zip({"index.html": "<h1>Hi</h1>", "css/style.css": "body{}"})

        result = await upload_website(store, to_data_url(blob), "Demo", "demo.zip", size_bytes=len(blob))

        assert result.bundle_id.startswith("demo-")
        assert result.file_count == 2
        assert result.tier == TierName.PRIMARY
        assert result.url == f"./websites/{result.bundle_id}/"
        loaded = await store.load(result.bundle_id)
        assert loaded.files == {"index.html": "<h1>Hi</h1>", "css/style.css": "body{}"}
        assert loaded.source_file_name == "demo.zip"

    @pytest.mark.asyncio
    async def test_progress_callback(self, store):
        calls = []
        blob = make_zip({"a.html": "a", "b.html": "b"})

        await upload_website(store, to_data_url(blob), "Demo", "demo.zip",
                             progress=lambda done, total: calls.append((done, total)))

        assert calls == [(1, 2), (2, 2)]

    @pytest.mark.asyncio
    async def test_rejected_before_decoding(self, store):
        with pytest.raises(UploadRejected):
            await upload_website(store, "not even base64", "Demo", "demo.rar")

    @pytest.mark.asyncio
    async def test_declared_size_over_limit(self, store):
        blob = make_zip({"index.html": "x"})

        with pytest.raises(UploadRejected):
            await upload_website(store, to_data_url(blob), "Demo", "demo.zip", size_bytes=5 * 1024 * 1024)

    @pytest.mark.asyncio
    async def test_decoded_size_over_limit(self, store):
        data_url = "data:application/zip;base64," + base64.b64encode(b"\x00" * (1024 * 1024 + 1)).decode()

        with pytest.raises(UploadRejected):
            await upload_website(store, data_url, "Demo", "demo.zip")

    @pytest.mark.asyncio
    async def test_bad_archive_stores_nothing(self, store):
        data_url = "data:application/zip;base64," + base64.b64encode(b"not a zip").decode()

        with pytest.raises(ArchiveFormatError):
            await upload_website(store, data_url, "Demo", "demo.zip")

        stats = await store.get_stats()
        assert stats["primary_tier"]["total_items"] == 0
        assert stats["secondary_tier"]["total_items"] == 0


class TestUploadAppFile:
    @pytest.mark.asyncio
    async def test_upload_stores_raw_file(self, store):
        payload = b"\x00asm\x01\x00\x00\x00"
        data_url = "data:application/wasm;base64," + base64.b64encode(payload).decode()

        result = await upload_app_file(store, data_url, "My Game", "game.wasm", mime_type="application/wasm")

        assert result.bundle_id.startswith("my-game-")
        assert result.file_count == 1
        assert result.url == f"./apps/download/{result.bundle_id}/game.wasm"
        stored = await store.load_file(result.bundle_id, "game.wasm")
        assert stored.data == payload
        assert stored.mime_type == "application/wasm"

    @pytest.mark.asyncio
    async def test_mime_type_guessed_from_name(self, store):
        data_url = base64.b64encode(b"PK\x03\x04").decode()

        result = await upload_app_file(store, data_url, "Game", "game.zip")

        stored = await store.load_file(result.bundle_id, "game.zip")
        assert stored.mime_type == "application/zip"

    @pytest.mark.asyncio
    async def test_oversized_file_rejected(self, store):
        data_url = base64.b64encode(b"x" * (1024 * 1024 + 1)).decode()

        with pytest.raises(UploadRejected):
            await upload_app_file(store, data_url, "Game", "game.bin")
