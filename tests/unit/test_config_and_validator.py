from __future__ import annotations

import json
from pathlib import Path

import pytest
from jsonschema import ValidationError as SchemaError
from pydantic import ValidationError

from mcp_deployer.config import Settings
from mcp_deployer.validator import (
    load_run_requests,
    validate_gateway_config,
    validate_run_requests,
)

FIXTURES = Path(__file__).resolve().parents[2] / "fixtures" / "run-requests"


def test_gateway_image_from_version() -> None:
    assert Settings().gateway_image == "ghcr.io/agentgateway/agentgateway:0.9.0-musl"
    assert Settings(gateway_version="1.2.3-rc1").gateway_image.endswith(":1.2.3-rc1-musl")


@pytest.mark.parametrize("bad", ["1.0;rm -rf", "latest@sha256", "", "1.0 beta"])
def test_gateway_version_rejects_injection(bad: str) -> None:
    with pytest.raises(ValidationError):
        Settings(gateway_version=bad)


def test_runtime_must_be_known() -> None:
    with pytest.raises(ValidationError):
        Settings(runtime="nomad")


def test_load_fixture_requests() -> None:
    reqs = load_run_requests(FIXTURES / "mixed.yaml")

    assert [s.server.name for s in reqs.servers] == ["filesystem", "brave-search"]
    assert reqs.agents[0].env_values["KAGENT_NAMESPACE"] == "production"
    assert len(reqs.agents[0].mcp_servers) == 2


def test_json_and_empty_documents(tmp_path: Path) -> None:
    doc = {"servers": [{"server": {"name": "x", "remotes": [{"url": "http://x/mcp"}]}}]}
    path = tmp_path / "reqs.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    assert load_run_requests(path).servers[0].server.name == "x"

    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    reqs = load_run_requests(empty)
    assert reqs.servers == [] and reqs.agents == []


def test_schema_rejects_malformed_requests() -> None:
    with pytest.raises(SchemaError):
        validate_run_requests({"servers": [{"server": {}}]})
    with pytest.raises(SchemaError):
        validate_run_requests({"unexpected": []})


def test_gateway_schema_requires_one_target_kind() -> None:
    route = {
        "name": "x",
        "matches": [{"path": {"pathPrefix": "x/mcp"}}],
        "backends": [{"weight": 100, "mcp": {"targets": [{"name": "x"}]}}],
    }
    doc = {"binds": [{"port": 8080, "listeners": [{"name": "default", "protocol": "HTTP", "routes": [route]}]}]}
    with pytest.raises(SchemaError):
        validate_gateway_config(doc)

    route["backends"][0]["mcp"]["targets"][0]["sse"] = {"host": "x", "port": 80, "path": "/"}
    validate_gateway_config(doc)
