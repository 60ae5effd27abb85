"""
Context resolution and the on-disk environment cache.

An EnvrcContext ties the nearest .envrc to its cache slot under
``<home>/envs/``. The slot is named after a hash of the .envrc *path*, so the
cache only changes when the user runs ``quickenv reload``.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import logging
import os
from pathlib import Path
from typing import BinaryIO, Iterable

from quickenv.errors import EnvParseError, NoEnvrcError, QuickenvError

ENVRC_NAME = ".envrc"

Env = dict[str, str]

logger = logging.getLogger(__name__)


@dataclass
class EnvrcContext:
    """The .envrc governing the current directory and where its cache lives."""

    envrc: BinaryIO
    root: Path
    env_cache_path: Path
    env_cache_dir: Path

    @property
    def envrc_path(self) -> Path:
        return self.root / ENVRC_NAME

    def close(self) -> None:
        self.envrc.close()

    def __enter__(self) -> EnvrcContext:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def cache_key(envrc_path: Path) -> str:
    """Hex digest naming the cache file of the .envrc at ``envrc_path``."""
    return hashlib.sha256(os.fsencode(str(envrc_path))).hexdigest()


def resolve_envrc_context(quickenv_home: Path, start_path: Path | None = None) -> EnvrcContext:
    """
    Find the nearest .envrc walking upwards from ``start_path`` (default: cwd).
    """
    if start_path is None:
        try:
            start_path = Path.cwd()
        except OSError as e:
            raise QuickenvError("failed to get current directory") from e

    current = start_path.absolute()
    for root in [current, *current.parents]:
        envrc_path = root / ENVRC_NAME
        if not envrc_path.is_file():
            continue

        logger.debug("loading %s", envrc_path)
        try:
            envrc = open(envrc_path, "rb")
        except OSError as e:
            raise QuickenvError(f"failed to open {envrc_path}") from e

        env_cache_dir = quickenv_home / "envs"
        return EnvrcContext(
            envrc=envrc,
            root=root,
            env_cache_path=env_cache_dir / cache_key(envrc_path),
            env_cache_dir=env_cache_dir,
        )

    raise NoEnvrcError()


def parse_env_line(line: bytes, env: Env, prev_var_name: str | None) -> str | None:
    """Apply one ``name=value`` or continuation line to ``env``.

    Returns the variable name the next continuation line belongs to. A line
    without ``=`` is appended to the previous variable's value after a newline.
    """
    var_name, sep, value = line.partition(b"=")
    if sep:
        name = os.fsdecode(var_name)
        env[name] = os.fsdecode(value)
        return name

    if prev_var_name is None:
        raise EnvParseError(f"continuation line before any variable: {line!r}")
    env[prev_var_name] = env[prev_var_name] + "\n" + os.fsdecode(line)
    return prev_var_name


def parse_env_lines(lines: Iterable[bytes]) -> Env:
    env: Env = {}
    prev_var_name = None
    for raw_line in lines:
        prev_var_name = parse_env_line(raw_line.rstrip(b"\n"), env, prev_var_name)
    return env


def format_env(env: Env) -> bytes:
    """Serialize ``env`` into the cache format, sorted by variable name."""
    return b"".join(
        os.fsencode(key) + b"=" + os.fsencode(env[key]) + b"\n" for key in sorted(env)
    )


def load_envvars(ctx: EnvrcContext) -> Env | None:
    """Load the cached diff for ``ctx``, or None if it was never generated."""
    try:
        f = open(ctx.env_cache_path, "rb")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise QuickenvError(f"failed to read envrc cache at {ctx.env_cache_path}") from e

    with f:
        return parse_env_lines(f)


def save_envvars(ctx: EnvrcContext, env: Env) -> None:
    """Rewrite the cache file of ``ctx`` with ``env``."""
    try:
        with open(ctx.env_cache_path, "wb") as f:
            f.write(format_env(env))
    except OSError as e:
        raise QuickenvError(f"failed to create envrc cache at {ctx.env_cache_path}") from e
