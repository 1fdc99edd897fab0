from pathlib import Path

from exclog.config import ExclogSettings


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("EXCLOG_CONNECTION_STRING", "InstrumentationKey=abc")
    monkeypatch.setenv("EXCLOG_MODE", " LOCAL ")
    monkeypatch.setenv("EXCLOG_CONFIGURATION", '{"endpoint_url": "http://localhost:9000"}')
    monkeypatch.setenv("EXCLOG_SQLITE_PATH", str(tmp_path / "x.sqlite3"))
    monkeypatch.setenv("EXCLOG_MAX_BATCH_SIZE", "0")

    s = ExclogSettings()

    assert s.connection_string == "InstrumentationKey=abc"
    assert s.mode == "local"
    assert s.configuration == {"endpoint_url": "http://localhost:9000"}
    assert s.sqlite_path == tmp_path / "x.sqlite3"
    assert s.max_batch_size == 1
    assert s.backend_options()["sqlite_path"] == str(tmp_path / "x.sqlite3")


def test_empty_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("EXCLOG_MODE", "")
    monkeypatch.setenv("EXCLOG_SQLITE_PATH", "  ")

    s = ExclogSettings()

    assert s.mode == "remote"
    assert isinstance(s.sqlite_path, Path)
    assert s.sqlite_path.name == "exceptions.sqlite3"
    assert s.install_global_hook is True


def test_flush_interval_is_clamped_and_forwarded(monkeypatch):
    monkeypatch.setenv("EXCLOG_FLUSH_INTERVAL_MS", "10")
    s = ExclogSettings()
    assert s.flush_interval_ms == 50
    assert s.backend_options()["flush_interval_ms"] == 50
