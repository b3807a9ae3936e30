"""
Tests for setup diagnostics.
"""
from unittest.mock import patch

from wamirror.core.config import MirrorConfig
from wamirror.services.diagnostics import run_checks


def checks_by_name(report):
    return {check.name: check for check in report.checks}


def test_missing_store_directory(tmp_path):
    report = run_checks(MirrorConfig(store_dir=tmp_path / "absent"))
    checks = checks_by_name(report)

    assert checks["store_directory"].ok is False
    assert checks["store_directory"].data["exists"] is False
    assert checks["messages_database"].ok is False
    assert not (tmp_path / "absent").exists()
    assert report.healthy is False


def test_store_without_transport(tmp_path):
    report = run_checks(MirrorConfig(store_dir=tmp_path))
    checks = checks_by_name(report)

    assert checks["store_directory"].ok is True
    assert checks["messages_database"].ok is True
    assert checks["messages_database"].data["messages"] == 0
    assert checks["transport"].detail == "not configured"
    assert checks["authenticated"].ok is False
    assert "connection" not in checks
    assert list(tmp_path.glob(".doctor-*")) == []


def test_unwritable_store_directory(tmp_path):
    with patch("wamirror.services.diagnostics.tempfile.mkstemp",
               side_effect=PermissionError("read-only")):
        report = run_checks(MirrorConfig(store_dir=tmp_path))
    checks = checks_by_name(report)

    assert checks["store_directory"].ok is False
    assert "read-only" in checks["store_directory"].detail
    assert checks["messages_database"].ok is False


def test_missing_fts5_is_reported(tmp_path):
    with patch("wamirror.services.diagnostics.fts5_available", return_value=False):
        report = run_checks(MirrorConfig(store_dir=tmp_path))

    assert checks_by_name(report)["full_text_search"].ok is False


def test_bad_transport_path(tmp_path):
    report = run_checks(MirrorConfig(store_dir=tmp_path, transport="wamirror_missing_module:Thing"))
    checks = checks_by_name(report)

    assert checks["transport"].ok is False
    assert "Cannot import" in checks["transport"].detail


def test_healthy_with_connection(tmp_path):
    config = MirrorConfig(store_dir=tmp_path, transport="conftest:FakeTransport")

    with patch("wamirror.services.diagnostics.fts5_available", return_value=True):
        report = run_checks(config, connect=True)
    data = report.to_dict()

    assert data["healthy"] is True, data
    assert [c["name"] for c in data["checks"]] == [
        "store_directory", "messages_database", "full_text_search",
        "transport", "authenticated", "connection",
    ]
