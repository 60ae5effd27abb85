"""
Running .envrc once and caching the variables it changes.

The .envrc is wrapped in a throwaway bash script that dumps the environment
before and after the .envrc body. Its stdout is parsed as it streams in, so the
.envrc's own output reaches the terminal live.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile

import typer

from quickenv import signals
from quickenv.config import Settings
from quickenv.core import Env, EnvrcContext, resolve_envrc_context, save_envvars
from quickenv.diff import (
    BEGIN_AFTER,
    BEGIN_BEFORE,
    END_AFTER,
    END_BEFORE,
    compute_diff,
    parse_env_diff,
)
from quickenv.errors import EnvrcFailedError, QuickenvError

logger = logging.getLogger(__name__)

SHELL = "bash"


def _script_prologue(prelude: str) -> bytes:
    return b"\n".join([
        b"",
        b"echo '" + BEGIN_BEFORE + b"'",
        b"env",
        b"echo '" + END_BEFORE + b"'",
        os.fsencode(prelude),
        b"",
    ])


def _script_epilogue() -> bytes:
    return b"\n".join([
        b"",
        b"echo '" + BEGIN_AFTER + b"'",
        b"env",
        b"echo '" + END_AFTER + b"'",
        b"",
    ])


def _echo_script_output(line: bytes) -> None:
    typer.echo(line)


def materialize(ctx: EnvrcContext, prelude: str) -> Env:
    """Run the .envrc of ``ctx`` and rewrite its cache. Returns the new diff."""
    try:
        ctx.env_cache_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise QuickenvError(f"failed to create cache directory at {ctx.env_cache_dir}") from e

    # The script lives next to .envrc so relative paths inside it keep working.
    try:
        temp_script = tempfile.NamedTemporaryFile(
            dir=ctx.root, prefix=".quickenv-", suffix=".sh"
        )
    except OSError as e:
        raise QuickenvError(f"failed to create temporary file at {ctx.root}") from e

    with temp_script:
        try:
            temp_script.write(_script_prologue(prelude))
            shutil.copyfileobj(ctx.envrc, temp_script)
            temp_script.write(_script_epilogue())
            temp_script.flush()
        except OSError as e:
            raise QuickenvError(
                f"failed to write to temporary file at {temp_script.name}"
            ) from e

        # Shims invoked by the .envrc must not load the cache we are replacing.
        child_env = dict(os.environ)
        child_env["QUICKENV_NO_SHIM"] = "1"

        signals.pass_control_to_child()
        try:
            try:
                proc = subprocess.Popen(
                    [SHELL, temp_script.name],
                    cwd=ctx.root,
                    env=child_env,
                    stdout=subprocess.PIPE,
                )
            except OSError as e:
                raise QuickenvError(f"failed to spawn {SHELL} for running envrc") from e

            with proc:
                try:
                    old_env, new_env = parse_env_diff(proc.stdout, _echo_script_output)
                except QuickenvError as e:
                    proc.kill()
                    raise QuickenvError("failed to parse envrc output") from e
                returncode = proc.wait()
        finally:
            signals.reset_control()

    if returncode != 0:
        raise EnvrcFailedError(returncode)

    diff = compute_diff(old_env, new_env)
    logger.debug("caching %d variables in %s", len(diff), ctx.env_cache_path)
    save_envvars(ctx, diff)
    return diff


def compute_envvars(settings: Settings) -> Env:
    """Resolve the current .envrc and materialize it."""
    with resolve_envrc_context(settings.home) as ctx:
        return materialize(ctx, settings.prelude)
