"""Tests for configuration models and scopes."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import TypeAdapter, ValidationError

from mailroom.errors import EmptyFieldError
from mailroom.models.config import MailroomConfig, StoreConfig, default_db_path
from mailroom.models.records import ContextEntry
from mailroom.models.scope import GLOBAL, GlobalScope, ProjectScope, Scope, scope_for


class TestStoreConfig:
    def test_default_path_is_per_user(self) -> None:
        path = StoreConfig().db_path
        assert path == default_db_path()
        assert Path(path).name == "mailroom.db"
        assert Path(path).parent.name == "mailroom"

    def test_linux_default_location(self, monkeypatch) -> None:
        monkeypatch.setattr("sys.platform", "linux")
        assert default_db_path() == str(Path("~/.local/share/mailroom/mailroom.db"))

    def test_macos_default_location(self, monkeypatch) -> None:
        monkeypatch.setattr("sys.platform", "darwin")
        assert default_db_path() == str(
            Path("~/Library/Application Support/mailroom/mailroom.db")
        )

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            StoreConfig(connection_timeout=0)

    def test_wal_mode_default(self) -> None:
        assert StoreConfig().wal_mode is True


class TestMailroomConfig:
    def test_from_env_uses_db_path(self, monkeypatch, tmp_path) -> None:
        target = str(tmp_path / "env.db")
        monkeypatch.setenv("MAILROOM_DB_PATH", target)
        assert MailroomConfig.from_env().store.db_path == target

    def test_from_env_ignores_blank(self, monkeypatch) -> None:
        monkeypatch.setenv("MAILROOM_DB_PATH", "   ")
        assert MailroomConfig.from_env().store.db_path == default_db_path()

    def test_from_env_without_variable(self, monkeypatch) -> None:
        monkeypatch.delenv("MAILROOM_DB_PATH", raising=False)
        assert MailroomConfig.from_env() == MailroomConfig.default()


class TestScope:
    def test_scope_for_none_is_global(self) -> None:
        assert scope_for(None) is GLOBAL

    def test_scope_for_project(self) -> None:
        scope = scope_for("owner/repo")
        assert isinstance(scope, ProjectScope)
        assert scope.project_id == "owner/repo"

    @pytest.mark.parametrize("blank", ["", "   ", "\t\n"])
    def test_scope_for_blank_raises(self, blank) -> None:
        with pytest.raises(EmptyFieldError) as info:
            scope_for(blank)
        assert info.value.field == "project_id"

    def test_project_scope_rejects_blank_id(self) -> None:
        with pytest.raises(ValidationError):
            ProjectScope(project_id=" ")

    def test_storage_keys_never_alias(self) -> None:
        assert GLOBAL.storage_key == ""
        assert ProjectScope(project_id="p").storage_key == "p"

    def test_scopes_are_hashable_and_compare_by_value(self) -> None:
        assert ProjectScope(project_id="p") == ProjectScope(project_id="p")
        assert GlobalScope() == GLOBAL
        assert len({GLOBAL, GlobalScope(), ProjectScope(project_id="p")}) == 2

    def test_discriminated_union_round_trip(self) -> None:
        adapter = TypeAdapter(Scope)
        assert adapter.validate_python({"kind": "global"}) == GLOBAL
        parsed = adapter.validate_python({"kind": "project", "project_id": "p"})
        assert parsed == ProjectScope(project_id="p")

    def test_context_entry_keeps_scope_type(self) -> None:
        entry = ContextEntry(scope=ProjectScope(project_id="p"), key="k", value="v")
        assert isinstance(entry.scope, ProjectScope)
        assert entry.updated_at > 0
