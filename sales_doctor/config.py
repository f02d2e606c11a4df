from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from sales_doctor.issue_taxonomy import ISSUE_DEFINITIONS, is_advisory

CONFIG_ENV_VAR = "SALES_DOCTOR_CONFIG"
SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ValidationSettings:
    long_value_threshold: int = 500
    near_duplicate_max_distance: int = 2
    near_duplicate_max_length_delta: int = 2
    near_duplicate_max_distinct: int = 500
    improvement_confidence_threshold: float = 0.8
    skip_known_retailer_pairs: bool = False
    disabled_rules: tuple[str, ...] = ()

    def rule_enabled(self, code: str) -> bool:
        """Only advisory rules can be switched off."""
        return not (code in self.disabled_rules and is_advisory(code))

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["disabled_rules"] = list(self.disabled_rules)
        return payload


INT_FIELDS = {
    "long_value_threshold",
    "near_duplicate_max_distance",
    "near_duplicate_max_length_delta",
    "near_duplicate_max_distinct",
}


def settings_from_mapping(payload: dict[str, Any]) -> ValidationSettings:
    known = {item.name for item in fields(ValidationSettings)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    values: dict[str, Any] = {}
    for key, value in payload.items():
        if key in INT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"{key} must be a non-negative integer, got {value!r}")
            values[key] = value
        elif key == "skip_known_retailer_pairs":
            if not isinstance(value, bool):
                raise ConfigError(f"{key} must be true or false, got {value!r}")
            values[key] = value
        elif key == "improvement_confidence_threshold":
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
                raise ConfigError(f"{key} must be a number between 0 and 1, got {value!r}")
            values[key] = float(value)
        elif key == "disabled_rules":
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise ConfigError("disabled_rules must be a list of rule ids")
            not_found = sorted(item for item in value if item not in ISSUE_DEFINITIONS)
            if not_found:
                raise ConfigError(f"Unknown rule ids in disabled_rules: {', '.join(not_found)}")
            values[key] = tuple(value)
    return ValidationSettings(**values)


def load_settings(path: str | Path | None = None) -> ValidationSettings:
    """
    Read settings from a JSON file.

    With no path, ``SALES_DOCTOR_CONFIG`` names the file; with neither the
    defaults apply. YAML is rejected rather than half-supported.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is None:
        return ValidationSettings()

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise ConfigError("YAML configs are not supported yet. Use JSON for now.")
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    return settings_from_mapping(payload)


def default_config_payload() -> dict[str, Any]:
    return ValidationSettings().to_dict()
