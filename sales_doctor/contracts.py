"""
Envelopes for the JSON documents sales-doctor writes.

Every document starts with the same header (contract name and version,
tool version) and carries a ``run_summary`` describing the command that
produced it. Bump a contract version whenever a field is renamed or removed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sales_doctor import __version__ as TOOL_VERSION

TOOL_NAME = "sales-doctor"

CONTRACT_VERSIONS = {
    "sales_doctor.validation": "1.0.0",
    "sales_doctor.fix_summary": "1.0.0",
    "sales_doctor.detection": "1.0.0",
}


class UnknownContractError(KeyError):
    pass


def generated_at() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_contract(name: str) -> dict[str, str]:
    if name not in CONTRACT_VERSIONS:
        raise UnknownContractError(name)
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def document_header(name: str) -> dict[str, Any]:
    contract = build_contract(name)
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
    }


def _as_text(path: Path | None) -> str | None:
    return None if path is None else str(path)


def build_run_summary(
    *,
    command: str,
    input_path: Path | None,
    status: str = "ok",
    output_path: Path | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    notes = list(warnings or [])
    return {
        "tool": TOOL_NAME,
        "command": command,
        "status": status,
        "generated_at": generated_at(),
        "input_file": _as_text(input_path),
        "output_file": _as_text(output_path),
        "warnings_count": len(notes),
        "warnings": notes,
        "metrics": dict(metrics or {}),
    }
