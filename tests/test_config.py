import pytest

from config import Config


def write_settings(tmp_path, body):
    path = tmp_path / "settings.yaml"
    path.write_text(body, encoding="utf-8")
    return str(path)


def test_presets_and_env_password(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_DB_PASSWORD", "s3cret")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    cfg = Config(write_settings(tmp_path, """
server:
  name: diag_test
  port: 9000
logging:
  level: debug
database_presets:
  test_db:
    user: system
    password: ${TEST_DB_PASSWORD}
    dsn: localhost:1521/XEPDB1
reports:
  output_preset: minimal
  max_rows: 50
  defaults:
    top_sql:
      hours_back: 48
"""))
    assert cfg.server_name == "diag_test"
    assert cfg.server_port == 9000
    assert cfg.log_level == "DEBUG"
    assert cfg.get_db_preset("test_db")["password"] == "s3cret"
    assert cfg.output_preset == "minimal"
    assert cfg.max_rows == 50
    assert cfg.get_report_defaults("top_sql") == {"hours_back": 48}
    assert cfg.get_report_defaults("health_check") == {}


def test_unknown_preset_raises(tmp_path):
    cfg = Config(write_settings(tmp_path, "database_presets: {}\n"))
    with pytest.raises(KeyError, match="not defined in settings.yaml"):
        cfg.get_db_preset("missing")


def test_invalid_output_preset_falls_back(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    cfg = Config(write_settings(tmp_path, "reports:\n  output_preset: verbose\n"))
    assert cfg.output_preset == "compact"
    assert cfg.log_level == "WARNING"
    assert cfg.max_rows == 200


def test_empty_file_uses_defaults(tmp_path):
    cfg = Config(write_settings(tmp_path, ""))
    assert cfg.server_name == "oracle_diagnostics_mcp"
    assert cfg.database_presets == {}
