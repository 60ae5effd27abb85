"""
Exception types shared across quickenv.

Every failure that should reach the user derives from QuickenvError. Context
is attached by re-raising with ``raise ... from exc`` so the top level can
print the whole cause chain.
"""

from __future__ import annotations


class QuickenvError(Exception):
    """Base class for all quickenv failures."""


class NoEnvrcError(QuickenvError):
    """Raised when no .envrc exists in the working directory or any parent."""

    def __init__(self) -> None:
        super().__init__("failed to find .envrc in current or any parent directory")


class NoHomeError(QuickenvError):
    """Raised when neither QUICKENV_HOME nor HOME is set."""

    def __init__(self) -> None:
        super().__init__("failed to find QUICKENV_HOME or HOME")


class EnvParseError(QuickenvError):
    """Raised when an environment dump or cache file is malformed."""


class ConfigError(QuickenvError):
    """Raised when config.toml cannot be parsed."""


class EnvrcFailedError(QuickenvError):
    """Raised when the .envrc subprocess exits non-zero."""

    def __init__(self, returncode: int):
        self.returncode = returncode
        super().__init__(f".envrc exited with status {returncode}")


class BinaryNotFoundError(QuickenvError):
    """Raised when the real binary behind a shim cannot be found."""

    def __init__(self, program: str):
        self.program = program
        super().__init__(f"failed to find {program} on path")


class SelfBinaryNotFoundError(QuickenvError):
    """Raised when the quickenv executable itself is not on PATH."""


class ShimShadowedError(QuickenvError):
    """Raised when a freshly created shim is shadowed earlier in PATH."""

    def __init__(self, shim_path, effective_path):
        self.shim_path = shim_path
        self.effective_path = effective_path
        super().__init__(
            f"{shim_path} is shadowed by an executable of the same name at {effective_path}"
        )


def format_error_chain(exc: BaseException) -> str:
    """Render an exception and its ``__cause__`` chain for the terminal."""
    causes: list[str] = []
    current = exc.__cause__
    while current is not None:
        causes.append(str(current) or type(current).__name__)
        current = current.__cause__

    message = str(exc) or type(exc).__name__
    if not causes:
        return message
    if len(causes) == 1:
        return f"{message}\n\nCaused by:\n    {causes[0]}"
    lines = [message, "", "Caused by:"]
    lines.extend(f"    {idx}: {cause}" for idx, cause in enumerate(causes))
    return "\n".join(lines)
