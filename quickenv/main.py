#!/usr/bin/env python3
"""quickenv - An unintrusive environment manager.

Commands:
- reload: run .envrc once and cache the variables it sets
- vars: print the cached variables
- shim / unshim: manage the shim binaries in ~/.quickenv/bin
- exec / which: run or locate a program as its shim would

When invoked under any name other than "quickenv" (i.e. through a shim
symlink), quickenv runs the real program of that name instead.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import os
import sys

from rich.console import Console
from rich.markup import escape
import typer

from quickenv import __version__, signals
from quickenv.config import QUICKENV_NAME, Settings
from quickenv.core import format_env, load_envvars, resolve_envrc_context
from quickenv.dispatch import (
    ShimInvocation,
    classify_invocation,
    find_shimmed_binary,
    run_shimmed_binary,
)
from quickenv.errors import QuickenvError, format_error_chain
from quickenv.grid import print_as_grid
from quickenv.logs import configure_logging, parse_log_level
from quickenv.materialize import compute_envvars
from quickenv.shims import (
    UnshimmedCommandsCheck,
    get_missing_shims,
    install_shims,
    is_shimmed,
    remove_shims,
)

logger = logging.getLogger(__name__)

err_console = Console(stderr=True, highlight=False, soft_wrap=True)

ENVIRONMENT_HELP = """\
ENVIRONMENT VARIABLES:

QUICKENV_LOG=debug to enable debug output (in shim commands as well)

QUICKENV_LOG=error to silence everything but errors

QUICKENV_NO_SHIM=1 to disable loading of .envrc, and effectively disable shims

QUICKENV_SHIM_EXEC=1 to directly exec() shims instead of spawning them as subprocess.
This can help with attaching debuggers.

QUICKENV_NO_SHIM_WARNINGS=1 to disable nags about running 'quickenv shim' everytime a new
binary is added

QUICKENV_PRELUDE='eval "$(direnv stdlib)"' can be overridden to something else to get rid of
the direnv stdlib and therefore direnv dependency, or to inject additional code before
executing each envrc.
"""

app = typer.Typer(
    name=QUICKENV_NAME,
    help="An unintrusive environment manager.",
    epilog=ENVIRONMENT_HELP,
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode=None,
)


def _report_error(exc: QuickenvError) -> None:
    logger.error("%s", format_error_chain(exc))


@contextmanager
def reported_errors():
    """Log quickenv errors once and exit 1."""
    try:
        yield
    except QuickenvError as e:
        _report_error(e)
        raise typer.Exit(code=1) from e


def _load_settings() -> Settings:
    settings = Settings.load()
    logging.getLogger(QUICKENV_NAME).setLevel(parse_log_level(settings.log_level))
    return settings


def _hint_reload() -> None:
    logger.error(
        "Run [magenta]'quickenv reload'[/magenta] first to generate envvars",
        extra={"markup": True},
    )


def version_callback(value: bool):
    if value:
        typer.echo(f"{QUICKENV_NAME} {__version__}")
        raise typer.Exit()


@app.callback()
def common(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    pass


@app.command()
def reload() -> None:
    """Execute .envrc in the current or parent directory, and cache the new variables."""
    with reported_errors():
        settings = _load_settings()
        unshimmed = UnshimmedCommandsCheck.create(settings)
        unshimmed.exclude_current()
        compute_envvars(settings)
        unshimmed.report()


@app.command("vars")
def vars_() -> None:
    """Dump out cached environment variables.

    For example, use 'quickenv reload && eval "$(quickenv vars)"' to load the
    environment like direnv normally would.
    """
    with reported_errors():
        settings = _load_settings()
        with resolve_envrc_context(settings.home) as ctx:
            envvars = load_envvars(ctx)

    if envvars is None:
        _hint_reload()
        raise typer.Exit(code=1)

    typer.echo(format_env(envvars), nl=False)


def _confirm_auto_shims(settings: Settings, commands: list[str], root, yes: bool) -> None:
    bin_dir = escape(str(settings.bin_dir))
    err_console.print("Found these unshimmed commands in your [cyan].envrc[/cyan]:")
    err_console.print()
    print_as_grid(commands, console=err_console)
    err_console.print()
    if len(commands) == 1:
        err_console.print(f"Quickenv will create this new shim binary in [cyan]{bin_dir}[/cyan].")
    else:
        err_console.print(
            f"Quickenv will create these [green]{len(commands)}[/green] new shim binaries "
            f"in [cyan]{bin_dir}[/cyan]."
        )
    err_console.print(
        f"Inside of [cyan]{escape(str(root))}[/cyan], those commands will run with "
        "[cyan].envrc[/cyan] enabled."
    )
    err_console.print("Outside, they will run normally.")

    if yes:
        return
    if not typer.confirm("Continue?", default=True, err=True):
        raise typer.Exit(code=1)
    err_console.print()


@app.command()
def shim(
    commands: list[str] = typer.Argument(
        None,
        help="The names of the commands to expose. If missing, quickenv will determine "
        "recommended commands itself and ask for confirmation.",
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Disable confirmation prompts when running 'shim' without arguments."
    ),
) -> None:
    """Create a new shim binary in ~/.quickenv/bin/.

    Executing that binary will run in the context of the nearest .envrc, as if
    it was activated by direnv.

    If no commands are provided, quickenv will determine which commands the
    current .envrc makes available, ask for confirmation, and create shims for
    those commands. If commands are provided, quickenv creates those shims
    directly without confirmation.
    """
    commands = list(commands or [])
    auto = not commands

    with reported_errors():
        settings = _load_settings()

        if auto:
            with resolve_envrc_context(settings.home) as ctx:
                envvars = load_envvars(ctx)
            if envvars is None:
                _hint_reload()
                raise typer.Exit(code=1)
            commands = sorted(get_missing_shims(settings.home, envvars.get("PATH")))
            if commands:
                _confirm_auto_shims(settings, commands, ctx.root, yes)

        changes = install_shims(settings, commands)

    if changes == 0:
        logger.info("created [red]no[/red] new shims.", extra={"markup": True})
    else:
        logger.info(
            "Created [green]%d[/green] new shims in [cyan]%s[/cyan].",
            changes,
            escape(str(settings.bin_dir)),
            extra={"markup": True},
        )
        logger.info(
            "Use [magenta]'quickenv unshim <command>'[/magenta] to remove them again.",
            extra={"markup": True},
        )

    if auto:
        logger.info(
            "Use [magenta]'quickenv shim <command>'[/magenta] to run additional commands "
            "with [cyan].envrc[/cyan] enabled.",
            extra={"markup": True},
        )


@app.command()
def unshim(
    commands: list[str] = typer.Argument(..., help="The names of the commands to remove."),
) -> None:
    """Remove a shim binary from ~/.quickenv/bin/."""
    with reported_errors():
        settings = _load_settings()
        changes = remove_shims(settings, list(commands))

    logger.info(
        "Removed [green]%d[/green] shims from [cyan]%s[/cyan].\n"
        "Use [magenta]'quickenv shim <command>'[/magenta] to add them again",
        changes,
        escape(str(settings.bin_dir)),
        extra={"markup": True},
    )


# Option parsing stops at PROGRAM; everything after it, "--" and "--help"
# included, reaches the program untouched through ctx.args.
@app.command(
    "exec",
    context_settings={
        "allow_extra_args": True,
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
    },
)
def exec_(
    ctx: typer.Context,
    program_name: str = typer.Argument(..., help="The program to run."),
) -> None:
    """Run a program with .envrc loaded without having to shim it.

    Arguments after PROGRAM are passed to it verbatim.
    """
    with reported_errors():
        settings = _load_settings()
        code = run_shimmed_binary(settings, program_name, list(ctx.args))
    raise typer.Exit(code=code)


@app.command()
def which(
    program_name: str = typer.Argument(..., help="The command name to look up."),
    pretend_shimmed: bool = typer.Option(
        False,
        "--pretend-shimmed",
        help="Resolve the program even if quickenv has no shim for it.",
    ),
) -> None:
    """Determine which program quickenv's shim would launch under the hood.

    This will error if the shim is not installed. Pass '--pretend-shimmed' to
    simulate what would happen anyway.
    """
    with reported_errors():
        settings = _load_settings()
        if not pretend_shimmed and not is_shimmed(settings, program_name):
            logger.error("%s is not shimmed by quickenv", program_name)
            raise typer.Exit(code=1)
        shimmed = find_shimmed_binary(settings, program_name)

    typer.echo(str(shimmed.path))


def _run_shim(program_name: str, args: list[str]) -> int:
    try:
        try:
            settings = _load_settings()
            return run_shimmed_binary(settings, program_name, args)
        except QuickenvError as e:
            raise QuickenvError("failed to run shimmed command") from e
    except QuickenvError as e:
        _report_error(e)
        return 1


def main(argv: list[str] | None = None) -> None:
    """Entry point for the quickenv executable and every shim."""
    if argv is None:
        argv = sys.argv

    configure_logging(os.environ.get("QUICKENV_LOG"))
    logger.debug("argv[0] is %r", argv[0])

    invocation = classify_invocation(argv[0])
    signals.install_interrupt_handler()

    if isinstance(invocation, ShimInvocation):
        sys.exit(_run_shim(invocation.program_name, argv[1:]))

    logger.debug("own program name is quickenv, so no shim running")
    app(args=argv[1:], prog_name=QUICKENV_NAME)


if __name__ == "__main__":
    main()
