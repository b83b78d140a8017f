"""Schema validation helpers for run configs and run reports."""

from __future__ import annotations

import json
from importlib import resources
from typing import Any, Mapping

import jsonschema

SCHEMA_VERSION = "1.0"


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema bundled in the package."""
    with resources.files("gtiff2tiles.schemas").joinpath(name).open("r", encoding="utf-8") as handle:
        return json.load(handle)


def validate_run_config(payload: Mapping[str, Any]) -> None:
    """Validate a run config file payload against the schema."""
    schema = _load_schema("run_config.schema.json")
    jsonschema.validate(payload, schema)


def validate_run_report(report: Mapping[str, Any]) -> None:
    """Validate a run report against the schema."""
    schema = _load_schema("run_report.schema.json")
    jsonschema.validate(report, schema)
