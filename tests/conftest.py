import logging
import os
from pathlib import Path
import sys

import pytest

# Ensure repo root is importable as a package root (for `tests._utils`).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from quickenv import signals  # noqa: E402
from quickenv.config import Settings  # noqa: E402
from tests._utils.fs import make_executable  # noqa: E402

QUICKENV_VARS = (
    "QUICKENV_HOME",
    "QUICKENV_LOG",
    "QUICKENV_NO_SHIM",
    "QUICKENV_NO_SHIM_WARNINGS",
    "QUICKENV_SHIM_EXEC",
)


@pytest.fixture(autouse=True)
def hermetic_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Autouse: each test gets its own $HOME and runs inside $HOME/project.

    The direnv prelude is disabled so tests do not depend on direnv.
    """
    # /tmp may itself be a symlink (macOS), keep every path canonical
    home = tmp_path.resolve() / "home"
    project = home / "project"
    project.mkdir(parents=True)

    monkeypatch.setenv("HOME", str(home))
    for var in QUICKENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("QUICKENV_PRELUDE", "")
    monkeypatch.chdir(project)
    return project


@pytest.fixture(autouse=True)
def _restore_process_state():
    """Undo logging handlers and control handoff left behind by a test."""
    logger = logging.getLogger("quickenv")
    handlers = list(logger.handlers)
    level = logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    signals.reset_control()


@pytest.fixture
def project(hermetic_env: Path) -> Path:
    return hermetic_env


@pytest.fixture
def quickenv_home(hermetic_env: Path) -> Path:
    return hermetic_env.parent / ".quickenv"


@pytest.fixture
def settings(quickenv_home: Path) -> Settings:
    return Settings.load()


@pytest.fixture
def fake_self_binary(hermetic_env: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An executable standing in for the installed quickenv script."""
    binary = make_executable(hermetic_env.parent / "quickenv_bin" / "quickenv")
    monkeypatch.setattr("quickenv.shims.find_self_binary", lambda: binary)
    return binary


@pytest.fixture
def bin_on_path(quickenv_home: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Put <home>/bin in front of PATH, like a user following the README."""
    bin_dir = quickenv_home / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    return bin_dir
