"""
Tests for configuration loading and transport lookup.
"""
from datetime import timedelta
from pathlib import Path

import pytest

from wamirror.core.config import MirrorConfig, get_default_config_dir, load_config
from wamirror.core.errors import ConfigurationError
from wamirror.transport.base import load_transport


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("WAMIRROR_STORE", "WAMIRROR_NO_AUTO_SYNC", "WAMIRROR_SYNC_TIMEOUT", "WAMIRROR_TRANSPORT"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path):
    config = load_config(tmp_path / "missing.yaml")

    assert config.store_dir == get_default_config_dir() / "store"
    assert config.no_auto_sync is False
    assert config.stale_after == timedelta(hours=24)
    assert config.transport is None


def test_paths_derive_from_store_dir(tmp_path):
    config = MirrorConfig(store_dir=tmp_path)
    assert config.messages_db_path == tmp_path / "messages.db"
    assert config.session_db_path == tmp_path / "session.db"
    assert config.media_dir == tmp_path / "media"


def test_yaml_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "store_dir: ~/mirror\n"
        "no_auto_sync: yes\n"
        "stale_after: 6\n"
        "sync_timeout: 10\n"
        "transport: mytransport:Client\n"
        "colour: blue\n"
    )

    config = load_config(path)

    assert config.store_dir == Path("~/mirror").expanduser()
    assert config.no_auto_sync is True
    assert config.stale_after == timedelta(hours=6)
    assert config.sync_timeout == 10.0
    assert config.transport == "mytransport:Client"


def test_priority(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("sync_timeout: 10\nno_auto_sync: false\n")
    monkeypatch.setenv("WAMIRROR_SYNC_TIMEOUT", "20")
    monkeypatch.setenv("WAMIRROR_NO_AUTO_SYNC", "1")

    config = load_config(path, sync_timeout=5, no_auto_sync=None)

    assert config.sync_timeout == 5.0
    assert config.no_auto_sync is True


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("store_dir: [unclosed\n")
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_non_mapping_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigurationError):
        load_config(path)


@pytest.mark.parametrize("key,value", [
    ("no_auto_sync", "maybe"),
    ("sync_timeout", "soon"),
    ("follow_timeout", -1),
])
def test_invalid_values(tmp_path, key, value):
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "missing.yaml", **{key: value})


def test_stale_after_errors_name_hours(tmp_path):
    with pytest.raises(ConfigurationError, match="hours for stale_after"):
        load_config(tmp_path / "missing.yaml", stale_after="a day")
    with pytest.raises(ConfigurationError, match="seconds for sync_timeout"):
        load_config(tmp_path / "missing.yaml", sync_timeout="soon")


def test_ensure_directories(tmp_path):
    config = MirrorConfig(store_dir=tmp_path / "a" / "store")
    config.ensure_directories()
    assert config.media_dir.is_dir()


class TestLoadTransport:

    def test_loads_subclass(self, tmp_path):
        transport = load_transport("conftest:FakeTransport", MirrorConfig(store_dir=tmp_path))
        assert transport.config.store_dir == tmp_path

    @pytest.mark.parametrize("path", [
        "no_colon",
        "module:",
        "wamirror_missing_module:Thing",
        "wamirror.core.config:Nope",
        "wamirror.core.config:MirrorConfig",
    ])
    def test_bad_paths(self, tmp_path, path):
        with pytest.raises(ConfigurationError):
            load_transport(path, MirrorConfig(store_dir=tmp_path))
