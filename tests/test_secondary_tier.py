import os

import pytest

from sitevault.errors import SecondaryTierFailure
from sitevault.secondary_tier import SecondaryTier


@pytest.fixture
async def tier(tmp_path):
    secondary = SecondaryTier(str(tmp_path / "secondary"), max_storage_mb=1)
    yield secondary
    await secondary.cleanup()


class TestReadWrite:
    @pytest.mark.asyncio
    async def test_write_then_read(self, tier):
        await tier.write("website_a", b"payload")

        assert await tier.read("website_a") == b"payload"

    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, tier):
        assert await tier.read("website_missing") is None

    @pytest.mark.asyncio
    async def test_overwrite(self, tier):
        await tier.write("website_a", b"old")
        await tier.write("website_a", b"new")

        assert await tier.read("website_a") == b"new"
        assert (await tier.get_stats())["total_items"] == 1

    @pytest.mark.asyncio
    async def test_keys_with_path_characters(self, tier):
        key = "app_game-1_builds/v1 final.zip"
        await tier.write(key, b"zip")

        assert await tier.read(key) == b"zip"

    @pytest.mark.asyncio
    async def test_discard(self, tier):
        await tier.write("website_a", b"payload")

        assert await tier.discard("website_a") is True
        assert await tier.discard("website_a") is False
        assert await tier.read("website_a") is None

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "secondary")
        first = SecondaryTier(path)
        await first.write("website_a", b"payload")
        await first.cleanup()

        second = SecondaryTier(path)
        assert await second.read("website_a") == b"payload"
        await second.cleanup()


class TestTransactions:
    @pytest.mark.asyncio
    async def test_commit_applies_all_operations(self, tier):
        await tier.write("website_old", b"old")

        async with tier.transaction() as txn:
            txn.put("website_a", b"a")
            txn.put("website_b", b"b")
            txn.delete("website_old")

        assert await tier.read("website_a") == b"a"
        assert await tier.read("website_b") == b"b"
        assert await tier.read("website_old") is None

    @pytest.mark.asyncio
    async def test_get_sees_uncommitted_changes(self, tier):
        await tier.write("website_old", b"old")
        txn = tier.transaction()
        txn.put("website_a", b"a")
        txn.delete("website_old")

        assert await txn.get("website_a") == b"a"
        assert await txn.get("website_old") is None
        assert await tier.read("website_a") is None
        assert await tier.read("website_old") == b"old"
        txn.abort()

    @pytest.mark.asyncio
    async def test_exception_in_block_aborts(self, tier):
        with pytest.raises(ValueError):
            async with tier.transaction() as txn:
                txn.put("website_a", b"a")
                raise ValueError("boom")

        assert await tier.read("website_a") is None

    @pytest.mark.asyncio
    async def test_finished_transaction_rejects_operations(self, tier):
        txn = tier.transaction()
        txn.put("website_a", b"a")
        await txn.commit()

        with pytest.raises(RuntimeError):
            txn.put("website_b", b"b")
        with pytest.raises(RuntimeError):
            await txn.commit()


class TestFailures:
    @pytest.mark.asyncio
    async def test_over_capacity_is_a_tier_failure(self, tier):
        with pytest.raises(SecondaryTierFailure):
            await tier.write("website_huge", os.urandom(2 * 1024 * 1024))

        assert await tier.read("website_huge") is None
        assert list(tier.staging_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_capacity_counts_stored_bytes(self, tier):
        # Repetitive content compresses far below the 1MB limit on disk
        await tier.write("website_repetitive", b"x" * (2 * 1024 * 1024))

        assert await tier.read("website_repetitive") == b"x" * (2 * 1024 * 1024)

    @pytest.mark.asyncio
    async def test_unusable_path(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        tier = SecondaryTier(str(blocker / "secondary"))

        with pytest.raises(SecondaryTierFailure):
            await tier.write("website_a", b"payload")
        await tier.cleanup()

    @pytest.mark.asyncio
    async def test_failed_write_leaves_no_partial_state(self, tier, monkeypatch):
        await tier.write("website_a", b"original")
        written = []

        def failing_write(path, key, payload):
            if written:
                raise OSError("disk full")
            written.append(key)
            SecondaryTier._write_record(tier, path, key, payload)

        monkeypatch.setattr(tier, "_write_record", failing_write)

        with pytest.raises(SecondaryTierFailure):
            async with tier.transaction() as txn:
                txn.put("website_a", b"replacement")
                txn.put("website_b", b"b")

        assert await tier.read("website_a") == b"original"
        assert await tier.read("website_b") is None
        assert list(tier.staging_path.iterdir()) == []


def _fail_on_second_move(monkeypatch):
    """Make os.replace fail when the second staged record is moved into place."""
    real_replace = os.replace
    staged_moves = []

    def replace(src, dst):
        if str(src).endswith(".staging"):
            staged_moves.append(src)
            if len(staged_moves) == 2:
                raise OSError("device went away")
        real_replace(src, dst)

    monkeypatch.setattr(os, "replace", replace)


class TestAllOrNothingCommit:
    @pytest.mark.asyncio
    async def test_failed_move_undoes_earlier_moves(self, tier, monkeypatch):
        _fail_on_second_move(monkeypatch)

        with pytest.raises(SecondaryTierFailure):
            async with tier.transaction() as txn:
                txn.put("website_a", b"a")
                txn.put("website_b", b"b")

        assert await tier.read("website_a") is None
        assert await tier.read("website_b") is None
        assert (await tier.get_stats())["total_items"] == 0
        assert list(tier.staging_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_failed_move_restores_replaced_and_deleted_records(self, tier, monkeypatch):
        await tier.write("website_a", b"original")
        await tier.write("website_old", b"keep me")
        _fail_on_second_move(monkeypatch)

        with pytest.raises(SecondaryTierFailure):
            async with tier.transaction() as txn:
                txn.put("website_a", b"replacement")
                txn.put("website_b", b"b")
                txn.delete("website_old")

        assert await tier.read("website_a") == b"original"
        assert await tier.read("website_b") is None
        assert await tier.read("website_old") == b"keep me"
        assert list(tier.staging_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_failed_delete_is_a_tier_failure(self, tier, monkeypatch):
        await tier.write("website_old", b"keep me")
        real_replace = os.replace

        def replace(src, dst):
            if str(dst).endswith(".backup"):
                raise PermissionError("read-only store")
            real_replace(src, dst)

        monkeypatch.setattr(os, "replace", replace)

        with pytest.raises(SecondaryTierFailure):
            async with tier.transaction() as txn:
                txn.delete("website_old")

        assert await tier.read("website_old") == b"keep me"

    @pytest.mark.asyncio
    async def test_successful_commit_leaves_no_backups(self, tier):
        await tier.write("website_a", b"v1")

        async with tier.transaction() as txn:
            txn.put("website_a", b"v2")
            txn.delete("website_missing")

        assert await tier.read("website_a") == b"v2"
        assert list(tier.staging_path.iterdir()) == []
