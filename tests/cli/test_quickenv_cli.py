"""
CLI tests for the quickenv subcommands.

Tests cover:
- vars: missing .envrc, missing cache, output after reload
- reload: failing .envrc keeps exit status non-zero
- shim / unshim: explicit commands, automatic detection with and without confirmation
- which / exec: resolution through the cached PATH
"""

import logging
import os
from pathlib import Path
import shutil

import pytest
from rich.text import Text
from typer.testing import CliRunner

from quickenv.core import resolve_envrc_context, save_envvars
from quickenv.main import app
from tests._utils.fs import make_executable

requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash is not installed")


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _capture_quickenv_logs(caplog):
    caplog.set_level(logging.INFO, logger="quickenv")


def _plain_messages(caplog) -> str:
    return "\n".join(Text.from_markup(r.getMessage()).plain for r in caplog.records)


def _write_cache(quickenv_home: Path, env: dict) -> None:
    with resolve_envrc_context(quickenv_home) as ctx:
        ctx.env_cache_dir.mkdir(parents=True, exist_ok=True)
        save_envvars(ctx, env)


class TestVars:
    def test_without_envrc(self, runner, caplog):
        result = runner.invoke(app, ["vars"])

        assert result.exit_code == 1
        assert "failed to find .envrc in current or any parent directory" in caplog.text

    def test_without_cache(self, runner, project, caplog):
        (project / ".envrc").write_text("export FOO=bar\n")

        result = runner.invoke(app, ["vars"])

        assert result.exit_code == 1
        assert "Run 'quickenv reload' first to generate envvars" in _plain_messages(caplog)

    def test_prints_cache_sorted(self, runner, project, quickenv_home):
        (project / ".envrc").write_text("")
        _write_cache(quickenv_home, {"ZED": "1", "ALPHA": "two words"})

        result = runner.invoke(app, ["vars"])

        assert result.exit_code == 0
        assert "ALPHA=two words\nZED=1\n" in result.stdout


@requires_bash
class TestReload:
    def test_reload_then_vars(self, runner, project):
        (project / ".envrc").write_text("echo loading\nexport FOO=bar\n")

        result = runner.invoke(app, ["reload"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(app, ["vars"])
        assert result.exit_code == 0
        assert "FOO=bar\n" in result.stdout

    def test_failing_envrc(self, runner, project, caplog):
        (project / ".envrc").write_text("exit 1\n")

        result = runner.invoke(app, ["reload"])

        assert result.exit_code == 1
        assert ".envrc exited with status 1" in caplog.text

        result = runner.invoke(app, ["vars"])
        assert result.exit_code == 1


class TestShim:
    def test_explicit_shim_and_unshim(self, runner, settings, fake_self_binary, bin_on_path, caplog):
        result = runner.invoke(app, ["shim", "hello"])

        assert result.exit_code == 0, result.output
        assert (bin_on_path / "hello").is_symlink()
        assert f"Created 1 new shims in {bin_on_path}." in _plain_messages(caplog)

        result = runner.invoke(app, ["shim", "hello"])
        assert result.exit_code == 0
        assert "created no new shims." in _plain_messages(caplog)

        result = runner.invoke(app, ["unshim", "hello"])
        assert result.exit_code == 0
        assert not (bin_on_path / "hello").exists()
        assert f"Removed 1 shims from {bin_on_path}." in _plain_messages(caplog)

    def test_shadowed_shim_fails(self, runner, project, fake_self_binary, bin_on_path, monkeypatch, caplog):
        make_executable(project / "bogus" / "hello")
        monkeypatch.setenv("PATH", f"{project / 'bogus'}{os.pathsep}{os.environ['PATH']}")

        result = runner.invoke(app, ["shim", "hello"])

        assert result.exit_code == 1
        assert "is shadowed by an executable of the same name" in caplog.text

    def test_automatic_shims_need_a_cache(self, runner, project, fake_self_binary, bin_on_path):
        (project / ".envrc").write_text("")

        result = runner.invoke(app, ["shim", "--yes"])

        assert result.exit_code == 1

    def test_automatic_shims_with_yes(self, runner, project, quickenv_home, fake_self_binary, bin_on_path):
        tools = project / "tools"
        make_executable(tools / "tool")
        (project / ".envrc").write_text("")
        _write_cache(quickenv_home, {"PATH": f"{tools}{os.pathsep}{os.environ['PATH']}"})

        result = runner.invoke(app, ["shim", "-y"])

        assert result.exit_code == 0, result.output
        assert "Found these unshimmed commands" in result.output
        assert (bin_on_path / "tool").is_symlink()

    def test_automatic_shims_can_be_declined(self, runner, project, quickenv_home, fake_self_binary, bin_on_path):
        tools = project / "tools"
        make_executable(tools / "tool")
        (project / ".envrc").write_text("")
        _write_cache(quickenv_home, {"PATH": f"{tools}{os.pathsep}{os.environ['PATH']}"})

        result = runner.invoke(app, ["shim"], input="n\n")

        assert result.exit_code == 1
        assert not (bin_on_path / "tool").exists()

    def test_refuses_own_name(self, runner, fake_self_binary, bin_on_path, caplog):
        result = runner.invoke(app, ["shim", "quickenv"])

        assert result.exit_code == 0
        assert "not shimming own binary" in caplog.text
        assert not (bin_on_path / "quickenv").exists()


class TestWhichAndExec:
    @pytest.fixture
    def cached_project(self, project, quickenv_home, bin_on_path):
        bogus = project / "bogus"
        make_executable(bogus / "hello", "#!/bin/sh\necho hello from bogus \"$@\"\n")
        make_executable(bogus / "fail", "#!/bin/sh\nexit 5\n")
        (project / ".envrc").write_text("")
        _write_cache(quickenv_home, {"PATH": f"{bogus}{os.pathsep}{os.environ['PATH']}"})
        return bogus

    def test_which_requires_a_shim(self, runner, cached_project, caplog):
        result = runner.invoke(app, ["which", "hello"])

        assert result.exit_code == 1
        assert "hello is not shimmed by quickenv" in caplog.text

    def test_which_pretend_shimmed(self, runner, cached_project):
        result = runner.invoke(app, ["which", "hello", "--pretend-shimmed"])

        assert result.exit_code == 0
        assert result.stdout.strip() == str(cached_project / "hello")

    def test_which_after_shimming(self, runner, cached_project, fake_self_binary, bin_on_path):
        assert runner.invoke(app, ["shim", "hello"]).exit_code == 0

        result = runner.invoke(app, ["which", "hello"])

        assert result.exit_code == 0
        assert result.stdout.strip() == str(cached_project / "hello")

    def test_exec_propagates_exit_code(self, runner, cached_project):
        result = runner.invoke(app, ["exec", "fail"])
        assert result.exit_code == 5

    @pytest.mark.parametrize(
        "extra, expected",
        [
            (["--help"], "--help|"),
            (["-x", "--", "y"], "-x|--|y|"),
            (["-rf", "target"], "-rf|target|"),
            (["--version", "-h"], "--version|-h|"),
        ],
    )
    def test_exec_passes_arguments_verbatim(self, runner, cached_project, capfd, extra, expected):
        make_executable(cached_project / "show", '#!/bin/sh\nprintf "%s|" "$@"\n')

        result = runner.invoke(app, ["exec", "show", *extra])

        assert result.exit_code == 0, result.output
        assert "Usage:" not in result.output
        assert capfd.readouterr().out == expected

    def test_exec_help_before_program(self, runner):
        result = runner.invoke(app, ["exec", "--help"])

        assert result.exit_code == 0
        assert "Arguments after PROGRAM are passed to it verbatim." in result.output

    def test_exec_unknown_program(self, runner, cached_project, caplog):
        result = runner.invoke(app, ["exec", "does-not-exist"])

        assert result.exit_code == 1
        assert "failed to find does-not-exist on path" in caplog.text
