from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console

TEST_WITH_RE = re.compile(r"^\s*TEST_WITH=")
WHITESPACE_RE = re.compile(r"\s+")


class TestMode(str, Enum):
    __test__ = False

    miri = "miri"
    cargo = "cargo"
    nextest = "nextest"
    nothing = "nothing"


DEFAULT_MODE = TestMode.cargo

COMMANDS: dict[TestMode, tuple[str, ...] | None] = {
    TestMode.miri: ("cargo", "miri", "test"),
    TestMode.cargo: ("cargo", "test"),
    TestMode.nextest: ("cargo", "nextest", "run"),
    TestMode.nothing: None,
}

Runner = Callable[[tuple[str, ...], Optional[Path]], int]


class UnknownTestModeError(RuntimeError):
    def __init__(self, value: str):
        self.value = value
        accepted = "|".join(mode.value for mode in TestMode)
        super().__init__(f"Unknown TEST_WITH='{value}' (expected: {accepted})")


@dataclass(frozen=True)
class SelectorResult:
    mode: TestMode
    command: tuple[str, ...] | None
    exit_code: int


def discover_repo_root(cwd: Path | None = None) -> Path:
    start = (cwd or Path.cwd()).resolve()
    try:
        completed = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=start,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return start
    if completed.returncode != 0 or not completed.stdout.strip():
        return start
    return Path(completed.stdout.strip())


def read_test_mode(config_path: Path) -> str:
    """Return the raw TEST_WITH value, defaulting to ``cargo``.

    The last ``TEST_WITH=`` line wins and all whitespace is dropped from its
    value, so a blank assignment falls back to the default too.
    """
    if not config_path.is_file():
        return DEFAULT_MODE.value

    matches = [
        line
        for line in config_path.read_text(encoding="utf-8", errors="replace").splitlines()
        if TEST_WITH_RE.match(line)
    ]
    if not matches:
        return DEFAULT_MODE.value

    value = WHITESPACE_RE.sub("", matches[-1].split("=", 1)[1])
    return value or DEFAULT_MODE.value


def parse_test_mode(value: str) -> TestMode:
    try:
        return TestMode(value)
    except ValueError as error:
        raise UnknownTestModeError(value) from error


def run_command(command: tuple[str, ...], cwd: Path | None) -> int:
    return subprocess.run(list(command), cwd=cwd, check=False).returncode


def select_and_run(
    config_path: Path,
    console: Console | None = None,
    runner: Runner = run_command,
    cwd: Path | None = None,
) -> SelectorResult:
    console = console or Console()
    mode = parse_test_mode(read_test_mode(config_path))
    command = COMMANDS[mode]
    if command is None:
        console.print(f"Skipping tests (TEST_WITH={mode.value})", highlight=False)
        return SelectorResult(mode=mode, command=None, exit_code=0)

    console.print(f"▶ Running: {' '.join(command)}", highlight=False)
    return SelectorResult(mode=mode, command=command, exit_code=runner(command, cwd))
