"""
Shim management: detecting commands that lack a shim, and creating or
removing the symlinks in ``<home>/bin``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
import shutil

from quickenv.config import QUICKENV_NAME, Settings
from quickenv.core import EnvrcContext, load_envvars, resolve_envrc_context
from quickenv.errors import QuickenvError, SelfBinaryNotFoundError, ShimShadowedError

logger = logging.getLogger(__name__)


def _canonicalize(entry: str | Path) -> Path:
    return Path(os.path.realpath(entry))


def get_missing_shims(
    quickenv_home: Path,
    new_path: str | None,
    old_path: str | None = None,
) -> set[str]:
    """Executables reachable only through directories that ``new_path`` adds.

    ``old_path`` defaults to the PATH of the current process. Commands that
    already have a shim in ``<home>/bin`` are not reported.
    """
    rv: set[str] = set()
    if new_path is None:
        return rv

    if old_path is None:
        old_path = os.environ.get("PATH", "")
    old_dirs = {_canonicalize(entry) for entry in old_path.split(os.pathsep) if entry}

    for entry in new_path.split(os.pathsep):
        # an empty entry would canonicalize to the cwd
        if not entry:
            continue
        directory = _canonicalize(entry)
        if directory in old_dirs:
            continue
        try:
            _collect_missing_shims(quickenv_home, directory, rv)
        except OSError as e:
            logger.debug("skipping over directory %s: %s", directory, e)

    return rv


def _collect_missing_shims(quickenv_home: Path, directory: Path, rv: set[str]) -> None:
    bin_dir = quickenv_home / "bin"
    with os.scandir(directory) as entries:
        for entry in entries:
            try:
                # directories carry the executable bit too
                if entry.is_dir():
                    continue
                is_executable = entry.stat().st_mode & 0o111 != 0
            except OSError as e:
                logger.debug("skipping over %s: %s", entry.path, e)
                continue

            if is_executable and not os.path.lexists(bin_dir / entry.name):
                rv.add(entry.name)


class UnshimmedCommandsCheck:
    """Nag about commands the cached PATH exposes but no shim covers.

    Call ``exclude_current`` before the cache may change and ``report``
    afterwards, so that the "new" count only covers what appeared in between.
    """

    def __init__(self, settings: Settings, ctx: EnvrcContext | None):
        self.settings = settings
        self.ctx = ctx
        self.old_missing_shims: set[str] = set()

    @property
    def enabled(self) -> bool:
        return self.ctx is not None

    @classmethod
    def create(cls, settings: Settings) -> UnshimmedCommandsCheck:
        if settings.no_shim_warnings:
            return cls(settings, None)
        with resolve_envrc_context(settings.home) as ctx:
            return cls(settings, ctx)

    def _current_missing_shims(self) -> set[str] | None:
        envvars = load_envvars(self.ctx)
        if envvars is None:
            return None
        return get_missing_shims(self.settings.home, envvars.get("PATH"))

    def exclude_current(self) -> None:
        if not self.enabled:
            return
        missing = self._current_missing_shims()
        if missing is not None:
            self.old_missing_shims = missing

    def report(self, only_if_new: bool = False) -> None:
        if not self.enabled:
            return
        missing = self._current_missing_shims()
        if missing is None:
            return

        total = len(missing)
        new = len(missing - self.old_missing_shims)
        if (only_if_new and new > 0) or (not only_if_new and total > 0):
            new_txt = f" ([green]{new}[/green] new)" if new > 0 else ""
            logger.warning(
                "[green]%d[/green] unshimmed commands%s. Use [magenta]'quickenv shim'[/magenta] "
                "to make them available.\n"
                "Set QUICKENV_NO_SHIM_WARNINGS=1 to silence this message.",
                total,
                new_txt,
                extra={"markup": True},
            )


def find_self_binary() -> Path:
    """Location of the quickenv executable that shims should point at."""
    found = shutil.which(QUICKENV_NAME)
    if found is None:
        raise SelfBinaryNotFoundError(f"failed to find {QUICKENV_NAME} on PATH")
    return Path(found)


def _same_location(found: str, expected: Path) -> bool:
    found_path = Path(found).absolute()
    return _canonicalize(found_path.parent) / found_path.name == (
        _canonicalize(expected.parent) / expected.name
    )


def install_shims(settings: Settings, commands: list[str]) -> int:
    """Symlink each command in ``<home>/bin`` to quickenv. Returns how many are new."""
    bin_dir = settings.bin_dir
    try:
        bin_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise QuickenvError(f"failed to create {bin_dir}") from e

    self_binary = find_self_binary()
    changes = 0

    for command in commands:
        if command == QUICKENV_NAME:
            logger.warning("not shimming own binary")
            continue

        command_path = bin_dir / command
        try:
            command_path.unlink()
            was_there = True
        except FileNotFoundError:
            was_there = False
        except OSError as e:
            raise QuickenvError(f"failed to replace {command_path}") from e

        try:
            command_path.symlink_to(self_binary)
        except OSError as e:
            raise QuickenvError(f"failed to symlink {self_binary} to {command_path}") from e

        if not was_there:
            changes += 1

        effective_command_path = shutil.which(command)
        if effective_command_path is None:
            raise QuickenvError(
                f"failed to find command {command} after shimming. "
                f"Are you sure that {bin_dir} is on your PATH?"
            )
        if not _same_location(effective_command_path, command_path):
            raise ShimShadowedError(command_path, effective_command_path)

    return changes


def remove_shims(settings: Settings, commands: list[str]) -> int:
    """Delete the shims for ``commands``. Returns how many existed."""
    changes = 0
    for command in commands:
        if command == QUICKENV_NAME:
            logger.warning("not unshimming own binary")
            continue

        command_path = settings.bin_dir / command
        try:
            command_path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            raise QuickenvError(f"failed to remove {command_path}") from e
        changes += 1
    return changes


def is_shimmed(settings: Settings, program_name: str) -> bool:
    """Whether ``program_name`` on PATH currently resolves to our shim."""
    found = shutil.which(program_name)
    return found is not None and _same_location(found, settings.bin_dir / program_name)
