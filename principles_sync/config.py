"""Configuration loading — environment variables over an optional YAML file.

Every setting has a default, so a run with no environment and no config
file is still valid. Precedence (highest first): explicit overrides passed
by the CLI, environment variables, the YAML file, built-in defaults.
"""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_ENDPOINTS = [
    "https://github.com/asciifylabs/agentic-principles.git",
    "git@github.com:asciifylabs/agentic-principles.git",
]
DEFAULT_BRANCH = "main"
DEFAULT_SCAN_DEPTH = 3

# Path of the remote permission partial, relative to the mirror root.
PERMISSION_PARTIAL = "claude-settings.json"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


def _default_mirror_dir() -> Path:
    return Path.home() / ".local" / "share" / "claude-principles" / "repo"


def _default_output() -> Path:
    return Path(tempfile.gettempdir()) / "claude-principles-active.md"


def _default_settings_file() -> Path:
    return Path.home() / ".claude" / "settings.json"


def _default_lock_file() -> Path:
    return Path(tempfile.gettempdir()) / "claude-principles.lock"


def _default_config_file() -> Path:
    return Path.home() / ".config" / "principles-sync" / "config.yaml"


@dataclass
class SyncConfig:
    """Resolved settings for one pipeline run."""

    mirror_dir: Path = field(default_factory=_default_mirror_dir)
    output: Path = field(default_factory=_default_output)
    settings_file: Path = field(default_factory=_default_settings_file)
    lock_file: Path = field(default_factory=_default_lock_file)
    endpoints: list[str] = field(default_factory=lambda: list(DEFAULT_ENDPOINTS))
    branch: str = DEFAULT_BRANCH
    categories: list[str] = field(default_factory=list)
    skip_settings: bool = False
    verbose: bool = False
    scan_depth: int = DEFAULT_SCAN_DEPTH
    root: Path = field(default_factory=Path.cwd)

    @property
    def permission_partial(self) -> Path:
        return self.mirror_dir / PERMISSION_PARTIAL


# env var -> config key
_ENV_KEYS = {
    "PRINCIPLES_DIR": "mirror_dir",
    "PRINCIPLES_OUTPUT": "output",
    "PRINCIPLES_SETTINGS_FILE": "settings_file",
    "PRINCIPLES_LOCK_FILE": "lock_file",
    "PRINCIPLES_REPO_URLS": "endpoints",
    "PRINCIPLES_BRANCH": "branch",
    "PRINCIPLES_CATEGORIES": "categories",
    "SKIP_SETTINGS": "skip_settings",
    "VERBOSE": "verbose",
}


def load_config(
    env: Mapping[str, str] | None = None,
    config_file: str | Path | None = None,
    **overrides: Any,
) -> SyncConfig:
    """Build a ``SyncConfig`` from defaults, YAML, environment and overrides.

    Args:
        env: Environment mapping (defaults to ``os.environ``).
        config_file: YAML file to read. Defaults to ``$PRINCIPLES_CONFIG``
            or ``~/.config/principles-sync/config.yaml``; a missing file is
            not an error.
        overrides: Values from the command line. ``None`` means "not given".

    Raises:
        ConfigError: If the YAML file exists but cannot be used.
    """
    env = os.environ if env is None else env

    if config_file is None:
        config_file = env.get("PRINCIPLES_CONFIG") or _default_config_file()
    raw: dict[str, Any] = dict(_read_yaml(Path(config_file).expanduser()))

    for var, key in _ENV_KEYS.items():
        value = env.get(var)
        if value is None:
            continue
        # An empty flag means "off"; an empty path or list means "unset".
        if not value.strip() and key not in ("skip_settings", "verbose"):
            continue
        raw[key] = value

    for key, value in overrides.items():
        if value is not None:
            raw[key] = value

    config = SyncConfig()
    if "mirror_dir" in raw:
        config.mirror_dir = _as_path(raw["mirror_dir"])
    if "output" in raw:
        config.output = _as_path(raw["output"])
    if "settings_file" in raw:
        config.settings_file = _as_path(raw["settings_file"])
    if "lock_file" in raw:
        config.lock_file = _as_path(raw["lock_file"])
    if "endpoints" in raw:
        endpoints = _as_str_list(raw["endpoints"])
        if endpoints:
            config.endpoints = endpoints
    if raw.get("branch"):
        config.branch = str(raw["branch"])
    if "categories" in raw:
        config.categories = _as_str_list(raw["categories"])
    if "skip_settings" in raw:
        config.skip_settings = _as_bool(raw["skip_settings"], "skip_settings")
    if "verbose" in raw:
        config.verbose = _as_bool(raw["verbose"], "verbose")
    if "scan_depth" in raw:
        config.scan_depth = _as_int(raw["scan_depth"], "scan_depth")
    if "root" in raw:
        config.root = _as_path(raw["root"])

    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the root")
    return data


def _as_path(value: Any) -> Path:
    return Path(str(value)).expanduser()


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part for part in re.split(r"[,\s]+", value) if part]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ConfigError(f"Expected a list of strings, got {type(value).__name__}")


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f"Invalid boolean for {key}: {value!r}")


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid integer for {key}: {value!r}") from exc
