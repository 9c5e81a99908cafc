"""
Settings loader (``estate_config.loader``).

Reads the packaged ``defaults.yaml``, overlays an optional site YAML file,
then applies ``ESTATE_*`` environment variables, and returns an
``EstateSettings``.

Failure modes
-------------
* Missing site file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or bad values  -> ``ValueError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from estate_config.schema import EstateSettings

DEFAULTS_PATH = Path(__file__).with_name("defaults.yaml")

# YAML section/key -> settings field
_YAML_FIELDS: dict[tuple[str, ...], str] = {
    ("database_url",): "database_url",
    ("statement_timeout_seconds",): "statement_timeout_seconds",
    ("lock_timeout_seconds",): "lock_timeout_seconds",
    ("pool_size",): "pool_size",
    ("cancellation", "default_office_charge_percent"): "default_office_charge_percent",
    ("cancellation", "refund_installment_count"): "refund_installment_count",
    ("cancellation", "refund_frequency_months"): "refund_frequency_months",
    ("installments", "missed_after_days"): "missed_after_days",
    ("installments", "reminder_lead_days"): "reminder_lead_days",
    ("logging", "level"): "log_level",
}

_ENV_PREFIX = "ESTATE_"

_CONVERTERS: dict[str, Any] = {
    "database_url": str,
    "statement_timeout_seconds": float,
    "lock_timeout_seconds": float,
    "pool_size": int,
    "default_office_charge_percent": Decimal,
    "refund_installment_count": int,
    "refund_frequency_months": int,
    "missed_after_days": int,
    "reminder_lead_days": int,
    "log_level": str,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _flatten(data: Mapping[str, Any], source: str) -> dict[str, Any]:
    flat: dict[str, Any] = {}
    known_sections = {path[0] for path in _YAML_FIELDS}
    for key in data:
        if key not in known_sections:
            raise ValueError(f"{source}: unknown setting {key!r}")
    for path, field in _YAML_FIELDS.items():
        node: Any = data
        for part in path:
            if not isinstance(node, Mapping) or part not in node:
                node = None
                break
            node = node[part]
        if node is not None:
            flat[field] = node
    return flat


def _convert(field: str, value: Any) -> Any:
    try:
        return _CONVERTERS[field](str(value) if field == "default_office_charge_percent" else value)
    except (TypeError, ValueError, InvalidOperation) as exc:
        raise ValueError(f"Invalid value for {field}: {value!r}") from exc


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for field in _CONVERTERS:
        raw = environ.get(_ENV_PREFIX + field.upper())
        if raw is not None:
            overrides[field] = raw
    # DATABASE_URL is honoured for compatibility with deployment tooling.
    if "database_url" not in overrides and environ.get("DATABASE_URL"):
        overrides["database_url"] = environ["DATABASE_URL"]
    return overrides


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EstateSettings:
    merged = _flatten(load_yaml_file(DEFAULTS_PATH), str(DEFAULTS_PATH))
    if path is not None:
        merged.update(_flatten(load_yaml_file(Path(path)), str(path)))
    merged.update(_env_overrides(os.environ if environ is None else environ))
    return EstateSettings(**{field: _convert(field, value) for field, value in merged.items()})
