"""
Configuration for codestash.

Values come from, in increasing priority:
- built-in defaults
- a JSON config file ($XDG_CONFIG_HOME/codestash/config.json or --config)
- CODESTASH_* environment variables
"""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from endpoints import BASE_URL
from .errors import DecodeError, StateIOError

DEFAULT_CLIENT_ID = "7d8b1e7d-8c8d-4c7e-9f4a-2f0afc1a0f01"
DEFAULT_CLIENT_SECRET = "cli-device-secret"
DEFAULT_TIMEOUT = 15.0

ENV_PREFIX = "CODESTASH_"


def get_config_dir() -> Path:
    """Get the config directory (XDG_CONFIG_HOME/codestash)."""
    base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "codestash"


def default_token_path() -> str:
    return str(get_config_dir() / "token.json")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Config:
    api_base_url: str = BASE_URL
    client_id: str = DEFAULT_CLIENT_ID
    client_secret: str = DEFAULT_CLIENT_SECRET
    token_path: str = ""
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not self.token_path:
            self.token_path = default_token_path()


def _read_config_file(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise DecodeError(f"decode config {path}: {exc}") from exc
    except OSError as exc:
        raise StateIOError(f"read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"decode config {path}: expected a JSON object")
    return data


def load_config(config_path: Optional[str] = None) -> Config:
    values: Dict[str, Any] = {}

    path = Path(config_path) if config_path else get_config_dir() / "config.json"
    if config_path or path.exists():
        known = {f.name for f in fields(Config)}
        values.update({k: v for k, v in _read_config_file(path).items() if k in known})

    for name in ("api_base_url", "client_id", "client_secret", "token_path"):
        env_value = os.getenv(ENV_PREFIX + name.upper())
        if env_value:
            values[name] = env_value

    cfg = Config(**values)
    try:
        file_timeout = float(cfg.timeout)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"decode config {path}: timeout is not a number") from exc
    cfg.timeout = _env_float(ENV_PREFIX + "TIMEOUT", file_timeout)
    cfg.token_path = os.path.expanduser(cfg.token_path)
    return cfg
