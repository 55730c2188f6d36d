"""Integration tests for the Mailroom facade."""

from __future__ import annotations

import pytest

from mailroom import GLOBAL, Mailroom, MailroomConfig, StorageUnavailableError, scope_for
from mailroom.models.config import StoreConfig


class TestMailroom:
    async def test_open_closes_handle_on_exit(self, db_path):
        async with Mailroom.open(db_path=db_path) as mailroom:
            assert mailroom.handle.is_open
            await mailroom.queue.send("p", "bob", "alice", "hi")
        assert not mailroom.handle.is_open

    async def test_state_survives_restart(self, db_path):
        """Messages and context persist across instances on the same file."""
        async with Mailroom.open(db_path=db_path) as mailroom:
            message_id = await mailroom.queue.send("p", "bob", "alice", "hi")
            await mailroom.context.set(scope_for("p"), "status", "ready")
            await mailroom.context.set(GLOBAL, "status", "idle")

        async with Mailroom.open(db_path=db_path) as mailroom:
            [msg] = await mailroom.queue.receive("p", "bob")
            assert msg.id == message_id
            assert await mailroom.context.get(scope_for("p"), "status") == "ready"
            assert await mailroom.context.get(scope_for(None), "status") == "idle"

    async def test_create_and_manual_close(self, config):
        mailroom = await Mailroom.create(config=config)
        try:
            assert mailroom.config == config
            assert mailroom.handle.db_path.endswith("test.db")
        finally:
            await mailroom.close()

    async def test_async_with_on_created_instance(self, db_path):
        async with await Mailroom.create(db_path=db_path) as mailroom:
            assert await mailroom.queue.peek("p", "bob") == []
        assert not mailroom.handle.is_open

    async def test_db_path_overrides_config(self, tmp_path):
        config = MailroomConfig(store=StoreConfig(db_path=str(tmp_path / "a.db")))
        async with Mailroom.open(config=config, db_path=str(tmp_path / "b.db")) as mailroom:
            assert mailroom.handle.db_path.endswith("b.db")
        assert (tmp_path / "b.db").exists()
        assert not (tmp_path / "a.db").exists()

    async def test_env_path_used_by_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MAILROOM_DB_PATH", str(tmp_path / "env.db"))
        async with Mailroom.open():
            pass
        assert (tmp_path / "env.db").exists()

    async def test_shared_pool_between_instances(self, db_path, pool):
        async with Mailroom.open(db_path=db_path, pool=pool) as a:
            async with Mailroom.open(db_path=db_path, pool=pool) as b:
                await a.queue.send("p", "bob", "alice", "hi")
                assert len(await b.queue.receive("p", "bob")) == 1
                assert await a.queue.peek("p", "bob") == []

    async def test_open_failure_raises_storage_unavailable(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        with pytest.raises(StorageUnavailableError):
            async with Mailroom.open(db_path=str(blocker / "mailroom.db")):
                pass
