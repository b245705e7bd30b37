from __future__ import annotations

from pathlib import Path  # noqa: TC003

import pytest  # noqa: TC002

from suggestkit.config import storage


def test_storage_config_prefers_explicit_env(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    custom = tmp_path / "custom-data"
    monkeypatch.setenv("SUGGESTKIT_DATA_DIR", str(custom))

    config = storage.get_storage_config()

    assert config.resolve_data_dir() == custom.resolve()


def test_database_config_uses_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")

    assert storage.get_database_config().uri == "sqlite:///override.db"


def test_database_config_creates_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("SUGGESTKIT_DATA_DIR", str(tmp_path / "data-dir"))

    uri = storage.get_database_config().uri

    expected_path = (tmp_path / "data-dir" / storage.DEFAULT_DB_FILENAME).resolve()
    assert uri == f"sqlite+pysqlite:///{expected_path}"
    assert expected_path.parent.exists()


def test_explicit_uri_beats_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///env.db")

    assert storage.get_database_config(uri="sqlite:///flag.db").uri == "sqlite:///flag.db"


def test_data_dir_falls_back_to_xdg_data_home(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("SUGGESTKIT_DATA_DIR", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
    monkeypatch.setattr(storage.os, "name", "posix")

    config = storage.get_storage_config()

    assert config.resolve_data_dir() == (tmp_path / storage.APP_DIR_NAME).resolve()
