import io
import json
import subprocess
from pathlib import Path

from conftest import MANIFEST
from rich.console import Console
from typer.testing import CliRunner

from cratekit import __version__, cli, selector
from cratekit.cli import EXIT_COMMAND_NOT_FOUND, EXIT_ERROR, EXIT_INVALID_INPUT, EXIT_OK, app

runner = CliRunner()


def _parse_json_output(output: str) -> dict:
    lines = [line for line in output.splitlines() if line.strip()]
    return json.loads(lines[-1])


def _use_template(monkeypatch, crate_dir: Path, template_dir: Path) -> None:
    monkeypatch.chdir(crate_dir)
    monkeypatch.setenv("CRATEKIT_TEMPLATE_DIR", str(template_dir))
    monkeypatch.delenv("CRATEKIT_OWNER", raising=False)


def _fake_tests(monkeypatch, root: Path, returncode: int) -> list:
    calls = []

    def fake_run(command, cwd=None, check=False):
        calls.append((tuple(command), cwd))
        return subprocess.CompletedProcess(args=command, returncode=returncode)

    monkeypatch.setattr(cli, "discover_repo_root", lambda: root)
    monkeypatch.setattr(selector.subprocess, "run", fake_run)
    return calls


def _split_consoles(monkeypatch) -> tuple[io.StringIO, io.StringIO]:
    stdout, stderr = io.StringIO(), io.StringIO()
    monkeypatch.setattr(cli, "console", Console(file=stdout, width=200))
    monkeypatch.setattr(cli, "err_console", Console(file=stderr, width=200))
    return stdout, stderr


def test_ci_tests_forwards_test_command_exit_code(tmp_path: Path, monkeypatch):
    (tmp_path / ".ci").mkdir()
    (tmp_path / ".ci" / "ci_tests.env").write_text("TEST_WITH=nextest\n", encoding="utf-8")
    calls = _fake_tests(monkeypatch, tmp_path, returncode=101)

    result = runner.invoke(app, ["ci-tests"])

    assert result.exit_code == 101
    assert calls == [(("cargo", "nextest", "run"), tmp_path)]
    assert "Running: cargo nextest run" in result.output


def test_ci_tests_defaults_to_cargo_test(tmp_path: Path, monkeypatch):
    calls = _fake_tests(monkeypatch, tmp_path, returncode=0)

    result = runner.invoke(app, ["ci-tests"])

    assert result.exit_code == EXIT_OK
    assert calls == [(("cargo", "test"), tmp_path)]


def test_ci_tests_nothing_skips(tmp_path: Path, monkeypatch):
    (tmp_path / ".ci").mkdir()
    (tmp_path / ".ci" / "ci_tests.env").write_text("TEST_WITH=nothing\n", encoding="utf-8")
    calls = _fake_tests(monkeypatch, tmp_path, returncode=1)

    result = runner.invoke(app, ["ci-tests"])

    assert result.exit_code == EXIT_OK
    assert calls == []


def test_ci_tests_unknown_mode_exits_one_with_stderr_diagnostic(tmp_path: Path, monkeypatch):
    (tmp_path / ".ci").mkdir()
    (tmp_path / ".ci" / "ci_tests.env").write_text("TEST_WITH=bogus\n", encoding="utf-8")
    calls = _fake_tests(monkeypatch, tmp_path, returncode=0)
    stdout, stderr = _split_consoles(monkeypatch)

    result = runner.invoke(app, ["ci-tests"])

    assert result.exit_code == EXIT_ERROR
    assert calls == []
    assert "bogus" in stderr.getvalue()
    assert "miri|cargo|nextest|nothing" in stderr.getvalue()
    assert "bogus" not in stdout.getvalue()


def test_ci_tests_missing_cargo_exits_127(tmp_path: Path, monkeypatch):
    _fake_tests(monkeypatch, tmp_path, returncode=0)
    stdout, stderr = _split_consoles(monkeypatch)

    def missing_cargo(command, cwd=None, check=False):
        raise FileNotFoundError(2, "No such file or directory", command[0])

    monkeypatch.setattr(selector.subprocess, "run", missing_cargo)

    result = runner.invoke(app, ["ci-tests"])

    assert result.exit_code == EXIT_COMMAND_NOT_FOUND
    assert "command_not_found" in stderr.getvalue()
    assert "Running: cargo test" in stdout.getvalue()


def test_ci_tests_unexecutable_cargo_reports_error(tmp_path: Path, monkeypatch):
    _fake_tests(monkeypatch, tmp_path, returncode=0)
    stdout, stderr = _split_consoles(monkeypatch)

    def denied(command, cwd=None, check=False):
        raise PermissionError(13, "Permission denied", command[0])

    monkeypatch.setattr(selector.subprocess, "run", denied)

    result = runner.invoke(app, ["ci-tests"])

    assert result.exit_code == EXIT_ERROR
    assert not isinstance(result.exception, PermissionError)
    assert "Permission denied" in stderr.getvalue()


def test_sync_json_output_schema(crate_dir: Path, template_dir: Path, monkeypatch):
    _use_template(monkeypatch, crate_dir, template_dir)

    result = runner.invoke(app, ["sync", "--name", "Acme", "--format", "json"])

    assert result.exit_code == EXIT_OK
    payload = _parse_json_output(result.stdout)
    assert payload["ok"] is True
    assert payload["command"] == "sync"
    assert payload["data"]["summary"]["created"] == 8
    assert payload["data"]["summary"]["updated"] == 2
    assert (crate_dir / "LICENSE").exists()


def test_sync_rejects_private_and_name_together(crate_dir: Path, template_dir: Path, monkeypatch):
    _use_template(monkeypatch, crate_dir, template_dir)

    result = runner.invoke(app, ["sync", "--private", "Acme", "--name", "Acme", "--format", "json"])

    assert result.exit_code == EXIT_INVALID_INPUT
    payload = _parse_json_output(result.stdout)
    assert payload["error"]["code"] == "config_error"
    assert not (crate_dir / "LICENSE").exists()
    assert not (crate_dir / "rustfmt.toml").exists()


def test_sync_without_manifest_is_precondition_failure(tmp_path: Path, template_dir: Path, monkeypatch):
    target = tmp_path / "empty"
    target.mkdir()
    _use_template(monkeypatch, target, template_dir)

    result = runner.invoke(app, ["sync", "--format", "json"])

    assert result.exit_code == EXIT_INVALID_INPUT
    payload = _parse_json_output(result.stdout)
    assert payload["error"]["code"] == "precondition_failed"
    assert list(target.iterdir()) == []


def test_sync_missing_template_dir_is_config_error(crate_dir: Path, tmp_path: Path, monkeypatch):
    _use_template(monkeypatch, crate_dir, tmp_path / "nowhere")

    result = runner.invoke(app, ["sync", "--format", "json"])

    assert result.exit_code == EXIT_INVALID_INPUT
    assert _parse_json_output(result.stdout)["error"]["code"] == "config_error"
    assert (crate_dir / "Cargo.toml").read_text(encoding="utf-8") == MANIFEST


def test_sync_force_short_flag_overwrites(crate_dir: Path, template_dir: Path, monkeypatch):
    _use_template(monkeypatch, crate_dir, template_dir)
    (crate_dir / "clippy.toml").write_text("# local\n", encoding="utf-8")

    result = runner.invoke(app, ["sync", "-f"])

    assert result.exit_code == EXIT_OK
    assert (crate_dir / "clippy.toml").read_text(encoding="utf-8") == 'msrv = "1.75"\n'


def test_sync_reports_failed_step_with_error_exit(crate_dir: Path, template_dir: Path, monkeypatch):
    _use_template(monkeypatch, crate_dir, template_dir)
    (template_dir / "clippy.toml").unlink()

    result = runner.invoke(app, ["sync", "--format", "json"])

    assert result.exit_code == EXIT_ERROR
    payload = _parse_json_output(result.stdout)
    assert payload["ok"] is False
    assert payload["data"]["summary"]["failed"] == 1
    assert (crate_dir / "deny.toml").exists()


def test_sync_help_exits_zero():
    result = runner.invoke(app, ["sync", "--help"])

    assert result.exit_code == EXIT_OK
    assert "--force" in result.output


def test_version_json():
    result = runner.invoke(app, ["version", "--format", "json"])

    assert result.exit_code == EXIT_OK
    assert _parse_json_output(result.stdout)["data"]["version"] == __version__
