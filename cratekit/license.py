from __future__ import annotations

from datetime import datetime, timezone

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .config import LicenseMode, templates_root

LICENSE_TEMPLATES = {
    LicenseMode.permissive: "LICENSE-MIT.j2",
    LicenseMode.proprietary: "LICENSE-PROPRIETARY.j2",
}


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(templates_root())),
        undefined=StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )


def render_license(mode: LicenseMode, owner: str, year: int | None = None) -> str:
    context = {
        "owner": owner,
        "year": year if year is not None else datetime.now(timezone.utc).year,
    }
    rendered = _environment().get_template(LICENSE_TEMPLATES[mode]).render(**context)
    return rendered + ("\n" if not rendered.endswith("\n") else "")
