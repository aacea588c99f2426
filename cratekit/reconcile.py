from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path

from .config import (
    CONFIG_FILES,
    DEVELOPMENT_DOCS,
    HEADER_TARGETS,
    HEADER_TEMPLATE,
    LICENSE_FILE,
    MANIFEST_FILE,
    README_FILE,
    README_POINTER,
    TEMPLATE_DOCS,
    WORKFLOW_FILE,
    SyncConfig,
)
from .license import render_license
from .textedit import ManifestError, append_once, prepend_once, set_package_license


class Outcome(str, Enum):
    created = "created"
    overwritten = "overwritten"
    updated = "updated"
    unchanged = "unchanged"
    skipped = "skipped"
    failed = "failed"


class ReconcileError(RuntimeError):
    pass


@dataclass(frozen=True)
class SyncAction:
    path: str
    outcome: Outcome
    detail: str = ""


@dataclass
class SyncReport:
    target_root: Path
    template_dir: Path
    actions: list[SyncAction] = field(default_factory=list)

    def record(self, path: str, outcome: Outcome, detail: str = "") -> None:
        self.actions.append(SyncAction(path=path, outcome=outcome, detail=detail))

    def count(self, outcome: Outcome) -> int:
        return sum(1 for action in self.actions if action.outcome == outcome)

    @property
    def failed(self) -> bool:
        return self.count(Outcome.failed) > 0

    def summary(self) -> dict[str, int]:
        return {outcome.value: self.count(outcome) for outcome in Outcome}


def _read_text(path: Path) -> str:
    # newline="" keeps CRLF files byte for byte through a read-modify-write.
    with path.open(encoding="utf-8", newline="") as handle:
        return handle.read()


def _write_text(path: Path, content: str) -> None:
    with path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(content)


def _copy_file(config: SyncConfig, report: SyncReport, source_name: str, destination_name: str) -> None:
    source = config.template_dir / source_name
    destination = config.target_root / destination_name

    if not source.is_file():
        report.record(destination_name, Outcome.failed, f"template file missing: {source}")
        return

    existed = destination.exists()
    if existed and not config.force:
        report.record(destination_name, Outcome.skipped, "already exists (use --force to overwrite)")
        return

    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, destination)
    report.record(destination_name, Outcome.overwritten if existed else Outcome.created)


def _sync_readme(config: SyncConfig, report: SyncReport) -> None:
    readme = config.target_root / README_FILE
    if not readme.exists():
        _write_text(readme, README_POINTER + "\n")
        report.record(README_FILE, Outcome.created)
        return

    updated = prepend_once(_read_text(readme), README_POINTER)
    if updated is None:
        report.record(README_FILE, Outcome.unchanged, f"already links {DEVELOPMENT_DOCS}")
        return
    _write_text(readme, updated)
    report.record(README_FILE, Outcome.updated, f"linked {DEVELOPMENT_DOCS}")


def _sync_source_header(config: SyncConfig, report: SyncReport) -> None:
    target_name = next((name for name in HEADER_TARGETS if (config.target_root / name).is_file()), None)
    if target_name is None:
        report.record(HEADER_TARGETS[0], Outcome.skipped, "no crate root source file")
        return

    header = config.template_dir / HEADER_TEMPLATE
    if not header.is_file():
        report.record(target_name, Outcome.failed, f"template file missing: {header}")
        return

    target = config.target_root / target_name
    updated = append_once(_read_text(target), _read_text(header))
    if updated is None:
        report.record(target_name, Outcome.unchanged, "header already present")
        return
    _write_text(target, updated)
    report.record(target_name, Outcome.updated, "appended header")


def _sync_license(config: SyncConfig, report: SyncReport) -> None:
    if config.owner is None or config.license_mode is None:
        report.record(LICENSE_FILE, Outcome.skipped, "no owner name (use --name, --private or CRATEKIT_OWNER)")
        return

    license_path = config.target_root / LICENSE_FILE
    existed = license_path.exists()
    if existed and not config.force:
        report.record(LICENSE_FILE, Outcome.skipped, "already exists (use --force to overwrite)")
        return

    license_path.write_text(render_license(config.license_mode, config.owner), encoding="utf-8")
    report.record(
        LICENSE_FILE,
        Outcome.overwritten if existed else Outcome.created,
        f"{config.license_mode.value} license for {config.owner}",
    )

    manifest = config.target_root / MANIFEST_FILE
    try:
        updated = set_package_license(_read_text(manifest), config.license_mode)
    except ManifestError as error:
        report.record(MANIFEST_FILE, Outcome.skipped, str(error))
        return
    if updated is None:
        report.record(MANIFEST_FILE, Outcome.unchanged, "license metadata already set")
        return
    _write_text(manifest, updated)
    report.record(MANIFEST_FILE, Outcome.updated, "license metadata")


def reconcile(config: SyncConfig) -> SyncReport:
    root = config.target_root
    if not (root / MANIFEST_FILE).is_file():
        raise ReconcileError(f"Missing {MANIFEST_FILE} in {root}. Run from the crate root.")

    report = SyncReport(target_root=root, template_dir=config.template_dir)

    steps = [(name, partial(_copy_file, config, report, name, name)) for name in CONFIG_FILES]
    steps += [
        (WORKFLOW_FILE, partial(_copy_file, config, report, WORKFLOW_FILE, WORKFLOW_FILE)),
        (DEVELOPMENT_DOCS, partial(_copy_file, config, report, TEMPLATE_DOCS, DEVELOPMENT_DOCS)),
        (README_FILE, partial(_sync_readme, config, report)),
        (HEADER_TARGETS[0], partial(_sync_source_header, config, report)),
        (LICENSE_FILE, partial(_sync_license, config, report)),
    ]

    # Steps are independent: an I/O or decoding failure is recorded and the run moves on.
    for path, step in steps:
        try:
            step()
        except (OSError, UnicodeError) as error:
            report.record(path, Outcome.failed, str(error))

    return report
