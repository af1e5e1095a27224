import json
import stat
from unittest.mock import patch

import pytest

from shared.storage import FileKeyValueStorage, MemoryKeyValueStorage, StorageError


class TestMemoryKeyValueStorage:
    async def test_get_omits_missing_keys(self):
        storage = MemoryKeyValueStorage({"chessBreakStreak": 2})

        assert await storage.get(["chessBreakStreak", "totalTiltCount"]) == {"chessBreakStreak": 2}

    async def test_values_are_copied_in_and_out(self):
        stats = {"win": 1, "loss": 0, "draw": 0}
        storage = MemoryKeyValueStorage()
        await storage.set({"sessionStats": stats})
        stats["win"] = 99

        loaded = await storage.get(["sessionStats"])
        loaded["sessionStats"]["loss"] = 5

        assert storage.snapshot()["sessionStats"] == {"win": 1, "loss": 0, "draw": 0}

    async def test_remove_ignores_unknown_keys(self):
        storage = MemoryKeyValueStorage({"a": 1, "b": 2})
        await storage.remove(["a", "missing"])

        assert storage.snapshot() == {"b": 2}


class TestFileKeyValueStorage:
    async def test_missing_file_reads_empty(self, tmp_path):
        storage = FileKeyValueStorage(tmp_path / "session.json")

        assert await storage.get(["gameHistory"]) == {}

    async def test_set_persists_across_instances(self, tmp_path):
        path = tmp_path / "session.json"
        await FileKeyValueStorage(path).set({"totalTiltCount": 3, "gameHistory": []})

        reloaded = FileKeyValueStorage(path)
        assert await reloaded.get(["totalTiltCount", "gameHistory"]) == {"totalTiltCount": 3, "gameHistory": []}

    async def test_set_merges_with_existing_keys(self, tmp_path):
        path = tmp_path / "session.json"
        storage = FileKeyValueStorage(path)
        await storage.set({"a": 1})
        await storage.set({"b": 2})

        assert json.loads(path.read_text()) == {"a": 1, "b": 2}

    async def test_file_and_directory_are_owner_only(self, tmp_path):
        path = tmp_path / "data" / "session.json"
        await FileKeyValueStorage(path).set({"a": 1})

        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert stat.S_IMODE(path.parent.stat().st_mode) == 0o700

    async def test_no_temp_files_left_behind(self, tmp_path):
        storage = FileKeyValueStorage(tmp_path / "session.json")
        await storage.set({"a": 1})
        await storage.set({"a": 2})

        assert [p.name for p in tmp_path.iterdir()] == ["session.json"]

    async def test_corrupt_file_raises_and_is_kept(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json")
        storage = FileKeyValueStorage(path)

        with pytest.raises(StorageError):
            await storage.get(["a"])
        assert path.read_text() == "{not json"

    async def test_non_object_root_raises(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("[1, 2]")

        with pytest.raises(StorageError, match="JSON object"):
            await FileKeyValueStorage(path).get(["a"])

    async def test_unserializable_value_raises_storage_error(self, tmp_path):
        storage = FileKeyValueStorage(tmp_path / "session.json")

        with pytest.raises(StorageError):
            await storage.set({"a": object()})
        assert await storage.get(["a"]) == {}

    async def test_failed_write_keeps_previous_state(self, tmp_path):
        storage = FileKeyValueStorage(tmp_path / "session.json")
        await storage.set({"a": 1})

        with patch("shared.storage.os.fsync", side_effect=OSError("disk full")), pytest.raises(StorageError):
            await storage.set({"a": 2})

        assert await storage.get(["a"]) == {"a": 1}
        assert json.loads((tmp_path / "session.json").read_text()) == {"a": 1}

    async def test_remove_rewrites_file(self, tmp_path):
        path = tmp_path / "session.json"
        storage = FileKeyValueStorage(path)
        await storage.set({"a": 1, "b": 2})
        await storage.remove(["a"])

        assert json.loads(path.read_text()) == {"b": 2}

    def test_storage_error_is_os_error(self):
        assert issubclass(StorageError, OSError)
