"""Configuration loading for quickenv.

Config precedence (lowest to highest):
1. Built-in defaults (in code)
2. <home>/config.toml
3. Environment variables (QUICKENV_*)

The home directory itself only comes from the environment, since the config
file lives inside it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import tomllib
from typing import Any, Mapping

from quickenv.errors import ConfigError, NoHomeError

QUICKENV_NAME = "quickenv"
DEFAULT_PRELUDE = 'eval "$(direnv stdlib)"'
DEFAULT_LOG_LEVEL = "info"


def get_quickenv_home(environ: Mapping[str, str] | None = None) -> Path:
    """Return QUICKENV_HOME, or ~/.quickenv when it is unset."""
    if environ is None:
        environ = os.environ
    if "QUICKENV_HOME" in environ:
        return Path(environ["QUICKENV_HOME"])
    if "HOME" in environ:
        return Path(environ["HOME"]) / ".quickenv"
    raise NoHomeError()


@dataclass
class Settings:
    """Resolved settings for a single invocation."""

    home: Path
    prelude: str = DEFAULT_PRELUDE
    shim_exec: bool = False
    no_shim: bool = False
    no_shim_warnings: bool = False
    log_level: str = DEFAULT_LOG_LEVEL
    config_path: Path | None = field(default=None, repr=False)

    @property
    def bin_dir(self) -> Path:
        return self.home / "bin"

    @property
    def envs_dir(self) -> Path:
        return self.home / "envs"

    @classmethod
    def load(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Load settings with precedence."""
        if environ is None:
            environ = os.environ

        settings = cls(home=get_quickenv_home(environ))

        config_path = settings.home / "config.toml"
        if config_path.is_file():
            settings = _merge_config(settings, _load_toml(config_path))
            settings.config_path = config_path

        return _apply_env_overrides(settings, environ)


def _load_toml(path: Path) -> dict[str, Any]:
    """Load TOML file."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse {path}") from e
    except OSError as e:
        raise ConfigError(f"failed to read {path}") from e


def _config_bool(data: dict[str, Any], key: str) -> bool:
    value = data[key]
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def _merge_config(settings: Settings, data: dict[str, Any]) -> Settings:
    """Merge TOML data into settings."""
    if "prelude" in data:
        settings.prelude = str(data["prelude"])
    if "shim_exec" in data:
        settings.shim_exec = _config_bool(data, "shim_exec")
    if "no_shim_warnings" in data:
        settings.no_shim_warnings = _config_bool(data, "no_shim_warnings")
    if "log" in data:
        settings.log_level = str(data["log"])
    return settings


def _apply_env_overrides(settings: Settings, environ: Mapping[str, str]) -> Settings:
    """Apply environment variable overrides.

    Flags are only switched on by the exact value "1".
    """
    if "QUICKENV_PRELUDE" in environ:
        settings.prelude = environ["QUICKENV_PRELUDE"]
    if "QUICKENV_LOG" in environ:
        settings.log_level = environ["QUICKENV_LOG"]

    flag_map = {
        "QUICKENV_SHIM_EXEC": "shim_exec",
        "QUICKENV_NO_SHIM": "no_shim",
        "QUICKENV_NO_SHIM_WARNINGS": "no_shim_warnings",
    }
    for env_key, attr in flag_map.items():
        if env_key in environ:
            setattr(settings, attr, environ[env_key] == "1")

    return settings
