from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping

MANIFEST_FILE = "Cargo.toml"
CI_TESTS_ENV = Path(".ci") / "ci_tests.env"

CONFIG_FILES = (
    "clippy.toml",
    "deny.toml",
    "rust-toolchain.toml",
    "rustfmt.toml",
)
WORKFLOW_FILE = ".github/workflows/ci.yml"

TEMPLATE_DOCS = "README.md"
DEVELOPMENT_DOCS = "DEVELOPMENT.md"
README_FILE = "README.md"
README_POINTER = f"See [{DEVELOPMENT_DOCS}]({DEVELOPMENT_DOCS}) for development setup."

HEADER_TEMPLATE = "src/header.rs"
HEADER_TARGETS = ("src/lib.rs", "src/main.rs")

LICENSE_FILE = "LICENSE"

ENV_TEMPLATE_DIR = "CRATEKIT_TEMPLATE_DIR"
ENV_OWNER = "CRATEKIT_OWNER"


class LicenseMode(str, Enum):
    permissive = "permissive"
    proprietary = "proprietary"


class ConfigError(RuntimeError):
    pass


def templates_root() -> Path:
    return Path(__file__).resolve().parent / "templates"


def default_template_dir(environ: Mapping[str, str]) -> Path:
    config_home = environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_home) / "cratekit" / "template"


def resolve_template_dir(environ: Mapping[str, str], explicit: Path | None = None) -> Path:
    if explicit is not None:
        candidate = explicit
    elif environ.get(ENV_TEMPLATE_DIR, "").strip():
        candidate = Path(environ[ENV_TEMPLATE_DIR].strip())
    else:
        candidate = default_template_dir(environ)

    candidate = candidate.expanduser().resolve()
    if not candidate.is_dir():
        raise ConfigError(
            f"Template directory not found: {candidate}. Pass --template or set {ENV_TEMPLATE_DIR}."
        )
    if not os.access(candidate, os.R_OK | os.X_OK):
        raise ConfigError(f"Template directory is not readable: {candidate}")
    return candidate


def resolve_license(
    private: str | None,
    name: str | None,
    environ: Mapping[str, str],
) -> tuple[LicenseMode, str] | None:
    """Pick the license flavor and owner from flags, then the environment.

    ``--private`` and ``--name`` are mutually exclusive. Without either, the
    owner falls back to ``CRATEKIT_OWNER`` with a permissive license. Returns
    ``None`` when no owner can be found.
    """
    private = (private or "").strip()
    name = (name or "").strip()

    if private and name:
        raise ConfigError("--private and --name are mutually exclusive; pass only one.")
    if private:
        return LicenseMode.proprietary, private
    if name:
        return LicenseMode.permissive, name

    owner = environ.get(ENV_OWNER, "").strip()
    if owner:
        return LicenseMode.permissive, owner
    return None


@dataclass(frozen=True)
class SyncConfig:
    target_root: Path
    template_dir: Path
    force: bool = False
    license_mode: LicenseMode | None = None
    owner: str | None = None

    @classmethod
    def from_env(
        cls,
        target_root: Path,
        environ: Mapping[str, str],
        force: bool = False,
        private: str | None = None,
        name: str | None = None,
        template_dir: Path | None = None,
    ) -> SyncConfig:
        resolved = resolve_license(private=private, name=name, environ=environ)
        return cls(
            target_root=target_root.resolve(),
            template_dir=resolve_template_dir(environ, template_dir),
            force=force,
            license_mode=resolved[0] if resolved else None,
            owner=resolved[1] if resolved else None,
        )
