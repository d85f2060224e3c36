"""Load pipeline settings and env configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from jobalerts.errors import ConfigError
from jobalerts.log import get_logger
from jobalerts.models import AccessPreferences

log = get_logger(__name__)

load_dotenv()

ROOT_DIR: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = ROOT_DIR / "config"
SETTINGS_PATH: Path = CONFIG_DIR / "settings.yaml"
DATA_DIR: Path = ROOT_DIR / "data"

DEFAULT_THRESHOLD = 80

# Conservative defaults: one request at a time, seconds apart.
DEFAULT_ACCESS: dict[str, AccessPreferences] = {
    "linkedin": AccessPreferences(min_delay_ms=3000, max_results_per_query=50),
    "default": AccessPreferences(min_delay_ms=2000, max_results_per_query=50),
}


@dataclass
class Settings:
    data_dir: Path = DATA_DIR
    match_threshold: int = DEFAULT_THRESHOLD
    step_timeout_s: float = 60.0
    step_retries: int = 2
    retry_base_delay_s: float = 0.5
    lookback_days: int = 7
    batch_size: int = 10
    access: dict[str, AccessPreferences] = field(default_factory=lambda: dict(DEFAULT_ACCESS))

    def access_defaults(self, source: str) -> AccessPreferences:
        key = source.lower().strip()
        return self.access.get(key) or self.access.get("default") or AccessPreferences().clamped()


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _settings_path(path: str | Path | None) -> Path:
    if path:
        return Path(path)
    override = get_env("JOBALERTS_CONFIG")
    return Path(override) if override else SETTINGS_PATH


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed settings file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read settings file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return data


def load_settings(path: str | Path | None = None) -> Settings:
    settings_path = _settings_path(path)
    if not settings_path.exists():
        log.info("No settings file at %s — using defaults", settings_path)
        data: dict[str, Any] = {}
    else:
        data = _read_yaml(settings_path)

    settings = Settings()
    pipeline = data.get("pipeline") or {}
    try:
        settings.match_threshold = int(pipeline.get("match_threshold", settings.match_threshold))
        settings.step_timeout_s = float(pipeline.get("step_timeout_s", settings.step_timeout_s))
        settings.step_retries = int(pipeline.get("step_retries", settings.step_retries))
        settings.retry_base_delay_s = float(
            pipeline.get("retry_base_delay_s", settings.retry_base_delay_s)
        )
        settings.lookback_days = int(pipeline.get("lookback_days", settings.lookback_days))
        settings.batch_size = max(1, int(pipeline.get("batch_size", settings.batch_size)))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid pipeline setting in {settings_path}: {exc}") from exc

    data_dir = get_env("JOBALERTS_DATA_DIR") or data.get("data_dir")
    if data_dir:
        settings.data_dir = Path(data_dir)

    for source, prefs in (data.get("access") or {}).items():
        if not isinstance(prefs, dict):
            raise ConfigError(f"Access preferences for {source!r} must be a mapping")
        base = settings.access_defaults(source).to_dict()
        base.update(prefs)
        try:
            settings.access[str(source).lower()] = AccessPreferences.from_dict(base)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid access preferences for {source!r}: {exc}") from exc

    log.debug("Loaded settings from %s (threshold=%d)", settings_path, settings.match_threshold)
    return settings


def ensure_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
