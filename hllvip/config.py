import os
from dataclasses import dataclass, field
from typing import List

import yaml
from dotenv import load_dotenv

CONFIG_ENV_KEY = "CONFIG_PATH"
DEFAULT_CONFIG_PATH = "config.yml"
DEFAULT_DATABASE_PATH = "data/hllvip.db"
DEFAULT_CRCON_URL = "http://localhost:8010"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MESSAGE_AUTHOR = "VIP Bot"
DEFAULT_JOB_INTERVAL = 60 * 60
DEFAULT_JOB_INITIAL_DELAY = 30

# Environment variables take precedence over the YAML file.
ENV_OVERRIDES = {
    "base_url": "CRCON_BASE_URL",
    "api_token": "CRCON_API_TOKEN",
    "username": "CRCON_USERNAME",
    "password": "CRCON_PASSWORD",
    "timeout": "CRCON_TIMEOUT",
}


@dataclass
class ConsoleConfig:
    base_url: str = DEFAULT_CRCON_URL
    api_token: str | None = None
    username: str | None = None
    password: str | None = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    message_author: str = DEFAULT_MESSAGE_AUTHOR

    @property
    def uses_token(self) -> bool:
        return bool(self.api_token)


@dataclass
class JobConfig:
    interval_seconds: int = DEFAULT_JOB_INTERVAL
    initial_delay_seconds: int = DEFAULT_JOB_INITIAL_DELAY


@dataclass
class BotConfig:
    token: str
    log_level: str
    database_path: str
    console: ConsoleConfig
    jobs: JobConfig = field(default_factory=JobConfig)
    warning_days: List[int] = field(default_factory=lambda: [7, 3, 1])


def _clean(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_timeout(value) -> float:
    if value is None or value == "":
        return DEFAULT_TIMEOUT_SECONDS
    timeout = float(value)
    # CRCON_TIMEOUT has historically been given in milliseconds.
    if timeout > 1000:
        timeout = timeout / 1000
    if timeout <= 0:
        raise ValueError("Console timeout must be positive")
    return timeout


def load_console_config(data: dict) -> ConsoleConfig:
    section = dict(data or {})
    for key, env_key in ENV_OVERRIDES.items():
        env_value = os.environ.get(env_key)
        if env_value:
            section[key] = env_value

    base_url = (_clean(section.get("base_url")) or DEFAULT_CRCON_URL).rstrip("/")
    api_token = _clean(section.get("api_token"))
    username = _clean(section.get("username"))
    password = _clean(section.get("password"))
    if not api_token and not (username and password):
        raise ValueError(
            "Missing CRCON authentication credentials: set 'api_token' or "
            "'username' and 'password'"
        )
    return ConsoleConfig(
        base_url=base_url,
        api_token=api_token,
        username=username,
        password=password,
        timeout=_parse_timeout(section.get("timeout")),
        message_author=_clean(section.get("message_author")) or DEFAULT_MESSAGE_AUTHOR,
    )


def load_config(path: str | None = None) -> BotConfig:
    load_dotenv()
    config_path = path or os.environ.get(CONFIG_ENV_KEY, DEFAULT_CONFIG_PATH)
    with open(config_path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    token = str(data.get("token") or os.environ.get("DISCORD_TOKEN") or "").strip()
    if not token:
        raise ValueError("Config missing 'token'")

    log_level = str(data.get("log_level") or "INFO").upper()
    valid_levels = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
    if log_level not in valid_levels:
        raise ValueError(
            f"Invalid log_level '{log_level}'. Must be one of {sorted(valid_levels)}"
        )

    database_path = str(data.get("database_path") or DEFAULT_DATABASE_PATH)

    jobs_data = data.get("jobs") or {}
    jobs = JobConfig(
        interval_seconds=int(
            jobs_data.get("interval_seconds") or DEFAULT_JOB_INTERVAL
        ),
        initial_delay_seconds=int(
            jobs_data.get("initial_delay_seconds", DEFAULT_JOB_INITIAL_DELAY)
        ),
    )
    if jobs.interval_seconds < 60:
        raise ValueError("jobs.interval_seconds must be at least 60")

    warning_days = [int(day) for day in data.get("warning_days") or [7, 3, 1]]
    if any(day < 1 for day in warning_days):
        raise ValueError("warning_days must be positive")

    return BotConfig(
        token=token,
        log_level=log_level,
        database_path=database_path,
        console=load_console_config(data.get("crcon") or {}),
        jobs=jobs,
        warning_days=sorted(set(warning_days), reverse=True),
    )
