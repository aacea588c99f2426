from __future__ import annotations

import re
import tomllib

from .config import LICENSE_FILE, LicenseMode

TABLE_HEADER_RE = re.compile(r"^\s*\[")
PACKAGE_HEADER_RE = re.compile(r"^\s*\[\s*package\s*\]\s*(#.*)?$")

# Keys under [package] owned by the license step, in the order they are inserted.
LICENSE_KEYS = {
    LicenseMode.permissive: {"license": "MIT"},
    LicenseMode.proprietary: {"license-file": LICENSE_FILE, "publish": False},
}
# Keys dropped from [package] because they contradict the generated LICENSE.
STALE_KEYS = {
    LicenseMode.permissive: ("license-file",),
    LicenseMode.proprietary: ("license",),
}


class ManifestError(RuntimeError):
    pass


def _newline(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


def prepend_once(existing: str, line: str) -> str | None:
    if line in existing:
        return None
    newline = _newline(existing)
    return f"{line}{newline}{newline}{existing}"


def append_once(existing: str, block: str) -> str | None:
    if not block or block in existing:
        return None
    separator = _newline(existing) if existing and not existing.endswith("\n") else ""
    return f"{existing}{separator}{block}"


def _toml_value(value: str | bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return f'"{value}"'


def _key_re(key: str) -> re.Pattern[str]:
    # Dotted keys such as `license.workspace = true` belong to the same key.
    return re.compile(rf"^\s*{re.escape(key)}\s*[.=]")


def _package_bounds(lines: list[str]) -> tuple[int, int]:
    start = None
    for idx, line in enumerate(lines):
        if PACKAGE_HEADER_RE.match(line.rstrip("\r\n")):
            start = idx
            break
    if start is None:
        raise ManifestError("Manifest has no [package] table header.")

    end = len(lines)
    for idx in range(start + 1, len(lines)):
        if TABLE_HEADER_RE.match(lines[idx]):
            end = idx
            break
    return start, end


def set_package_license(manifest_text: str, mode: LicenseMode) -> str | None:
    """Point the ``[package]`` license metadata at the generated LICENSE.

    Only the managed keys are touched; every other line is kept as-is.
    Returns ``None`` when the manifest already matches.
    """
    try:
        data = tomllib.loads(manifest_text)
    except tomllib.TOMLDecodeError as error:
        raise ManifestError(f"Manifest is not valid TOML: {error}") from error

    package = data.get("package")
    if not isinstance(package, dict):
        raise ManifestError("Manifest has no [package] table.")

    desired = LICENSE_KEYS[mode]
    managed = (*desired, *STALE_KEYS[mode])
    lines = manifest_text.splitlines(keepends=True)
    start, end = _package_bounds(lines)
    newline = "\r\n" if lines[start].endswith("\r\n") else "\n"

    section = lines[start + 1 : end]
    kept: list[str] = []
    present: set[str] = set()
    for line in section:
        key = next((candidate for candidate in managed if _key_re(candidate).match(line)), None)
        if key is None:
            kept.append(line)
        elif key not in desired:
            continue
        elif package.get(key) == desired[key] and key not in present:
            kept.append(line)
            present.add(key)
        elif key not in present:
            ending = newline if line.endswith(("\n", "\r\n")) else ""
            kept.append(f"{key} = {_toml_value(desired[key])}{ending}")
            present.add(key)

    missing = [f"{key} = {_toml_value(value)}{newline}" for key, value in desired.items() if key not in present]
    if missing:
        # Insert after the last non-blank line so trailing spacing before the next table survives.
        insert_at = len(kept)
        while insert_at > 0 and not kept[insert_at - 1].strip():
            insert_at -= 1
        if insert_at > 0 and not kept[insert_at - 1].endswith("\n"):
            kept[insert_at - 1] += newline
        elif insert_at == 0 and not lines[start].endswith("\n"):
            lines[start] += newline
        kept[insert_at:insert_at] = missing

    updated = "".join(lines[: start + 1] + kept + lines[end:])
    if updated == manifest_text:
        return None
    try:
        tomllib.loads(updated)
    except tomllib.TOMLDecodeError as error:
        raise ManifestError(f"Updated manifest would not be valid TOML: {error}") from error
    return updated
