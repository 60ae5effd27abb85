"""
Shim dispatch.

Every shim is a symlink to the quickenv executable, so quickenv decides what
to do from the name it was invoked as. A shim looks up the cached .envrc
variables, removes ``<home>/bin`` from PATH so it cannot find itself again,
and then runs the real program of the same name.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shutil
import subprocess

from quickenv import signals
from quickenv.config import QUICKENV_NAME, Settings
from quickenv.core import Env, load_envvars, resolve_envrc_context
from quickenv.errors import BinaryNotFoundError, NoEnvrcError, QuickenvError
from quickenv.shims import UnshimmedCommandsCheck

logger = logging.getLogger(__name__)

# Used when the child did not exit normally (e.g. it was killed by a signal).
FALLBACK_EXIT_CODE = 134


@dataclass(frozen=True)
class CommandInvocation:
    """quickenv was run under its own name: parse a subcommand."""


@dataclass(frozen=True)
class ShimInvocation:
    """quickenv was run through a shim named ``program_name``."""

    program_name: str


def classify_invocation(argv0: str) -> CommandInvocation | ShimInvocation:
    basename = os.path.basename(argv0)
    if basename == QUICKENV_NAME:
        return CommandInvocation()
    return ShimInvocation(program_name=basename)


@dataclass
class ShimmedBinary:
    path: Path
    envvars_override: Env


def strip_own_bin_dir(path_value: str, bin_dir: Path) -> str:
    """Drop every PATH entry pointing at ``bin_dir``, duplicates included."""
    own_bin_dir = Path(os.path.realpath(bin_dir))
    kept = []
    for entry in path_value.split(os.pathsep):
        if Path(entry) == bin_dir or Path(os.path.realpath(entry)) == own_bin_dir:
            logger.debug("removing own entry from PATH: %s", entry)
            continue
        kept.append(entry)
    return os.pathsep.join(kept)


def load_envvars_override(settings: Settings) -> Env:
    """Cached .envrc variables for the cwd; empty when there is no .envrc."""
    if settings.no_shim:
        return {}
    try:
        with resolve_envrc_context(settings.home) as ctx:
            envvars = load_envvars(ctx)
    except NoEnvrcError:
        return {}
    except QuickenvError as e:
        raise QuickenvError("failed to get environment variables from .envrc") from e
    return envvars or {}


def find_shimmed_binary(
    settings: Settings,
    program_name: str,
    cwd: Path | None = None,
) -> ShimmedBinary:
    envvars_override = load_envvars_override(settings)

    old_path = envvars_override.get("PATH", os.environ.get("PATH"))
    if old_path is None:
        raise QuickenvError("failed to read PATH")
    envvars_override["PATH"] = strip_own_bin_dir(old_path, settings.bin_dir)

    program_basename = os.path.basename(program_name)
    found = shutil.which(program_basename, path=envvars_override["PATH"])
    if found is None:
        raise BinaryNotFoundError(program_basename)

    if cwd is None:
        cwd = Path.cwd()
    return ShimmedBinary(path=cwd / found, envvars_override=envvars_override)


def _best_effort(action, description: str) -> None:
    try:
        action()
    except QuickenvError as e:
        logger.debug("%s failed: %s", description, e)


def run_shimmed_binary(settings: Settings, program_name: str, args: list[str]) -> int:
    """Run the real ``program_name`` under the cached environment.

    With ``shim_exec`` set this replaces the current process and never
    returns. Otherwise the program runs as a child and its exit code is
    returned.
    """
    logger.debug("attempting to launch shim for %r", program_name)

    try:
        shimmed = find_shimmed_binary(settings, program_name)
    except QuickenvError as e:
        raise QuickenvError("failed to find actual binary") from e

    env = {**os.environ, **shimmed.envvars_override}
    argv = [str(shimmed.path), *args]

    if settings.shim_exec:
        for key, value in shimmed.envvars_override.items():
            logger.debug("export %s=%r", key, value)
        logger.debug("execve %s", shimmed.path)
        try:
            os.execve(shimmed.path, argv, env)
        except OSError as e:
            raise QuickenvError(f"failed to exec {shimmed.path}") from e

    try:
        unshimmed = UnshimmedCommandsCheck.create(settings)
    except QuickenvError as e:
        logger.debug("not checking for unshimmed commands: %s", e)
        unshimmed = UnshimmedCommandsCheck(settings, None)
    _best_effort(unshimmed.exclude_current, "snapshotting unshimmed commands")

    signals.pass_control_to_child()
    try:
        completed = subprocess.run(argv, env=env, check=False)
    except OSError as e:
        raise QuickenvError("failed to spawn shim subcommand") from e
    finally:
        signals.reset_control()

    _best_effort(lambda: unshimmed.report(only_if_new=True), "checking for unshimmed commands")

    if completed.returncode >= 0:
        return completed.returncode

    logger.debug("quickenv did not get an exitcode from child process, using exit %d", FALLBACK_EXIT_CODE)
    return FALLBACK_EXIT_CODE
