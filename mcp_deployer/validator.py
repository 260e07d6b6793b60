"""JSON Schema validation for request documents and generated gateway configs."""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from mcp_deployer.types import RunRequests

# --- Schema loaders ---------------------------------------------------------


def _load_schema(package: str, resource_name: str) -> dict:
    with resources.files(package).joinpath(resource_name).open("r", encoding="utf-8") as f:
        return json.load(f)


def _run_request_schema() -> dict:
    return _load_schema("mcp_deployer.schema", "run-request.schema.json")


def _gateway_schema() -> dict:
    return _load_schema("mcp_deployer.schema", "gateway.schema.json")


# --- Public validators ------------------------------------------------------


def validate_run_requests(data: dict) -> None:
    Draft202012Validator(_run_request_schema()).validate(data)


def validate_gateway_config(data: dict) -> None:
    Draft202012Validator(_gateway_schema()).validate(data)


# --- Loaders ----------------------------------------------------------------


def load_run_requests(path: Path) -> RunRequests:
    """Read a YAML or JSON request document, validate it and parse it.

    An empty file is treated as an empty request set.
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data: Any = json.loads(text) if text.strip() else {}
    else:
        data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    validate_run_requests(data)
    return RunRequests.model_validate(data)
