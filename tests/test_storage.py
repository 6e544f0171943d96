"""Tests for storage/: persistent slot mirror and uploaded videos."""

import io
import json

import pytest

from overlay_relay.relay import RelayContext
from overlay_relay.storage import MISSING, DocumentStorage, VideoStorage, safe_filename


class TestDocumentStorage:
    def test_missing_file(self, storage):
        assert storage.load("alerts") is MISSING
        assert storage.load_all() == {}

    def test_write_then_load(self, storage):
        path = storage.write("studio2027", {"phase": "fondations", "pct": 12})
        assert path.name == "studio2027.json"
        assert storage.load("studio2027") == {"phase": "fondations", "pct": 12}

    def test_corrupt_file_ignored(self, storage):
        storage.path_for("dev_dashboard").write_text("{oops", encoding="utf-8")
        assert storage.load("dev_dashboard") is MISSING

    def test_no_temp_files_left(self, storage):
        storage.write("alerts", [{"id": "a"}])
        assert [p.name for p in storage.root.iterdir()] == ["studio-alerts.json"]

    @pytest.mark.asyncio
    async def test_save_non_persistent_slot_is_noop(self, storage):
        assert await storage.save("content", {"x": 1}) is False
        assert list(storage.root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_save_failure_is_logged_not_raised(self, storage, caplog):
        assert await storage.save("alerts", {"bad": object()}) is False
        assert "문서 저장 실패" in caplog.text

    @pytest.mark.asyncio
    async def test_in_memory_state_stands_when_disk_fails(self, tmp_path, monkeypatch):
        storage = DocumentStorage(tmp_path / "data")

        def boom(slot, value):
            raise OSError("disk full")

        monkeypatch.setattr(storage, "write", boom)
        context = RelayContext(storage=storage)
        assert await context.router.create_alert({"id": "a1"}) is True
        assert context.store.get("alerts")[0]["id"] == "a1"

    def test_hydrate_restores_persistent_slots(self, tmp_path):
        root = tmp_path / "data"
        root.mkdir()
        (root / "studio-alerts.json").write_text(json.dumps([{"id": "old", "status": "new"}]), encoding="utf-8")
        (root / "dev-dashboard.json").write_text("null", encoding="utf-8")
        context = RelayContext(storage=DocumentStorage(root))
        assert context.hydrate() == ["alerts", "dev_dashboard"]
        assert context.store.get("alerts") == [{"id": "old", "status": "new"}]
        assert context.store.get("dev_dashboard") is None


    @pytest.mark.asyncio
    async def test_hydrate_skips_wrong_shape(self, tmp_path, caplog):
        root = tmp_path / "data"
        root.mkdir()
        (root / "studio-alerts.json").write_text(json.dumps({"a1": {"status": "new"}}), encoding="utf-8")
        (root / "studio2027.json").write_text("[1, 2]", encoding="utf-8")
        (root / "dev-dashboard.json").write_text("[1, 2]", encoding="utf-8")
        context = RelayContext(storage=DocumentStorage(root))
        assert context.hydrate() == ["dev_dashboard"]
        assert "복원 무시" in caplog.text
        assert context.store.get("alerts") == []
        assert context.store.get("studio2027") == {}
        assert context.store.get("dev_dashboard") == [1, 2]

        frame = json.dumps({"type": "alert_create", "data": {"id": "a1", "status": "new"}})
        assert await context.router.handle_frame(frame) is True
        assert await context.router.update_alert_status("a1", "done") is True
        assert context.store.get("alerts") == [{"id": "a1", "status": "done"}]


class TestVideoStorage:
    @pytest.fixture
    def videos(self, tmp_path):
        return VideoStorage(tmp_path / "videos")

    def test_safe_filename(self):
        assert safe_filename("../../etc/passwd") == "passwd"
        assert safe_filename("C:\\clips\\intro final.mp4") == "intro_final.mp4"
        assert safe_filename("..") == ""

    def test_save_list_delete(self, videos):
        info = videos.save("intro.mp4", io.BytesIO(b"\x00" * 10))
        assert info["name"] == "intro.mp4"
        assert info["size"] == 10
        assert info["url"] == "/videos/intro.mp4"
        assert [v["name"] for v in videos.list_files()] == ["intro.mp4"]
        assert videos.delete("intro.mp4") is True
        assert videos.delete("intro.mp4") is False
        assert videos.list_files() == []

    def test_duplicate_name_gets_prefix(self, videos):
        videos.save("clip.webm", io.BytesIO(b"a"))
        second = videos.save("clip.webm", io.BytesIO(b"b"))
        assert second["name"] != "clip.webm"
        assert second["name"].endswith("_clip.webm")

    def test_rejects_non_video(self, videos):
        with pytest.raises(ValueError):
            videos.save("notes.txt", io.BytesIO(b"x"))

    def test_delete_traversal_is_contained(self, videos, tmp_path):
        outside = tmp_path / "secret.mp4"
        outside.write_bytes(b"x")
        assert videos.delete("../secret.mp4") is False
        assert outside.exists()
