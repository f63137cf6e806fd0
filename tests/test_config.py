import pytest

from hllvip.config import load_config

CRCON_ENV = ["CRCON_BASE_URL", "CRCON_API_TOKEN", "CRCON_USERNAME", "CRCON_PASSWORD", "CRCON_TIMEOUT"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in CRCON_ENV + ["CONFIG_PATH", "DISCORD_TOKEN"]:
        monkeypatch.delenv(key, raising=False)


def write_config(tmp_path, text):
    path = tmp_path / "config.yml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_loads_yaml_with_defaults(tmp_path):
    path = write_config(
        tmp_path,
        "token: abc\ncrcon:\n  base_url: http://rcon.example:8010/\n  api_token: t0k\n",
    )

    config = load_config(path)

    assert config.token == "abc"
    assert config.log_level == "INFO"
    assert config.database_path == "data/hllvip.db"
    assert config.console.base_url == "http://rcon.example:8010"
    assert config.console.uses_token
    assert config.console.timeout == 10.0
    assert config.jobs.interval_seconds == 3600
    assert config.jobs.initial_delay_seconds == 30
    assert config.warning_days == [7, 3, 1]


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = write_config(tmp_path, "token: abc\ncrcon:\n  api_token: from-file\n")
    monkeypatch.setenv("CRCON_USERNAME", "admin")
    monkeypatch.setenv("CRCON_PASSWORD", "pw")
    monkeypatch.setenv("CRCON_TIMEOUT", "15000")
    monkeypatch.setenv("CRCON_BASE_URL", "http://env-host:8010")

    config = load_config(path)

    assert config.console.base_url == "http://env-host:8010"
    assert config.console.username == "admin"
    assert config.console.timeout == 15.0


def test_missing_console_credentials_rejected(tmp_path):
    path = write_config(tmp_path, "token: abc\ncrcon:\n  username: admin\n")

    with pytest.raises(ValueError, match="credentials"):
        load_config(path)


def test_missing_token_rejected(tmp_path):
    path = write_config(tmp_path, "crcon:\n  api_token: t\n")

    with pytest.raises(ValueError, match="token"):
        load_config(path)


def test_invalid_log_level_rejected(tmp_path):
    path = write_config(tmp_path, "token: abc\nlog_level: chatty\ncrcon:\n  api_token: t\n")

    with pytest.raises(ValueError, match="log_level"):
        load_config(path)
