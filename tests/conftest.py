from pathlib import Path

import pytest

TEMPLATE_FILES = {
    "clippy.toml": 'msrv = "1.75"\n',
    "deny.toml": '[licenses]\nallow = ["MIT", "Apache-2.0"]\n',
    "rust-toolchain.toml": '[toolchain]\nchannel = "stable"\n',
    "rustfmt.toml": "max_width = 100\n",
    ".github/workflows/ci.yml": "name: CI\non: [push]\njobs:\n  test:\n    runs-on: ubuntu-latest\n",
    "README.md": "# Development\n\nRun `cargo test` before pushing.\n",
    "src/header.rs": "#![deny(clippy::unwrap_used)]\n#![deny(clippy::expect_used)]\n",
}

MANIFEST = '[package]\nname = "demo"\nversion = "0.1.0"\nedition = "2021"\n\n[dependencies]\n'
LIB_RS = "pub fn add(a: u32, b: u32) -> u32 {\n    a + b\n}\n"


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    root = tmp_path / "template"
    for relative, content in TEMPLATE_FILES.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def crate_dir(tmp_path: Path) -> Path:
    root = tmp_path / "crate"
    (root / "src").mkdir(parents=True)
    (root / "Cargo.toml").write_text(MANIFEST, encoding="utf-8")
    (root / "src" / "lib.rs").write_text(LIB_RS, encoding="utf-8")
    return root


def snapshot(root: Path) -> dict[str, bytes]:
    return {str(path.relative_to(root)): path.read_bytes() for path in sorted(root.rglob("*")) if path.is_file()}
