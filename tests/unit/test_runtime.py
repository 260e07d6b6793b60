from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from mcp_deployer.config import Settings
from mcp_deployer.errors import MissingParametersError
from mcp_deployer.reconcile.local import LocalReconciler
from mcp_deployer.runtime import (
    SUPPORTED_RUNTIMES,
    AgentRegistryRuntime,
    select_translator,
    validate_runtime,
)
from mcp_deployer.state.builder import DesiredStateBuilder
from mcp_deployer.translate.base import runtime_config_adapter
from mcp_deployer.translate.cluster import ClusterRuntimeConfig, ClusterTranslator
from mcp_deployer.translate.compose import ComposeTranslator, LocalRuntimeConfig
from mcp_deployer.types import (
    AgentRunRequest,
    AgentSpec,
    KeyValueSpec,
    MCPServerRunRequest,
    PackageAlternative,
    RemoteAlternative,
    ServerSpec,
)


class FakeRunner:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    def up(self, cancel=None, timeout=None) -> str:
        self.calls.append({"cancel": cancel, "timeout": timeout})
        return "started"


def _server(name: str, **env_specs) -> MCPServerRunRequest:
    pkg = PackageAlternative(
        registry_type="npm",
        identifier=name,
        environment_variables=[KeyValueSpec(name=k, is_required=v) for k, v in env_specs.items()],
    )
    return MCPServerRunRequest(server=ServerSpec(name=name, packages=[pkg]))


def _agent() -> AgentRunRequest:
    remote = MCPServerRunRequest(
        server=ServerSpec(name="search", remotes=[RemoteAlternative(url="http://search:8080/mcp")])
    )
    return AgentRunRequest(
        agent=AgentSpec(name="researcher", version="v1", image="researcher:1"),
        mcp_servers=[_server("fs"), remote],
    )


def _local_runtime(tmp_path: Path, runner: FakeRunner) -> AgentRegistryRuntime:
    return AgentRegistryRuntime(
        builder=DesiredStateBuilder(),
        translator=ComposeTranslator(str(tmp_path), 8080, "gw:1"),
        runtime_dir=tmp_path,
        reconciler=LocalReconciler(tmp_path, runner),
    )


def test_supported_runtimes() -> None:
    assert SUPPORTED_RUNTIMES == ("local", "kubernetes")
    validate_runtime("local")
    validate_runtime("kubernetes")


def test_unknown_runtime_rejected_without_custom_validator() -> None:
    with pytest.raises(ValueError, match="supported values"):
        validate_runtime("runtimeA")


def test_custom_validator_decides_unknown_runtimes() -> None:
    def only_a(runtime: str) -> None:
        if runtime != "runtimeA":
            raise ValueError(f"unsupported custom runtime: {runtime}")

    validate_runtime("runtimeA", only_a)
    with pytest.raises(ValueError, match="custom"):
        validate_runtime("unknown", only_a)


def test_select_translator_by_settings(tmp_path: Path) -> None:
    assert isinstance(select_translator(Settings(runtime_dir=tmp_path)), ComposeTranslator)
    translator = select_translator(Settings(runtime="kubernetes", default_namespace="agents"))
    assert isinstance(translator, ClusterTranslator)
    assert translator.default_namespace == "agents"


def test_reconcile_local_writes_files_and_starts(tmp_path: Path) -> None:
    runner = FakeRunner()

    cfg = _local_runtime(tmp_path, runner).reconcile_all([_server("fs")], [_agent()], timeout=5)

    assert isinstance(cfg, LocalRuntimeConfig)
    compose = yaml.safe_load((tmp_path / "docker-compose.yaml").read_text(encoding="utf-8"))
    assert sorted(compose["services"]) == ["agent_gateway", "fs"]
    gateway = yaml.safe_load((tmp_path / "agent_gateway" / "local.yaml").read_text(encoding="utf-8"))
    assert gateway["binds"][0]["port"] == 8080

    manifest = json.loads((tmp_path / "mcp-servers-researcher.json").read_text(encoding="utf-8"))
    assert [e["name"] for e in manifest] == ["fs", "search"]
    assert runner.calls == [{"cancel": None, "timeout": 5}]


def test_validation_errors_happen_before_any_write(tmp_path: Path) -> None:
    runner = FakeRunner()
    runtime_dir = tmp_path / "runtime"

    with pytest.raises(MissingParametersError):
        _local_runtime(runtime_dir, runner).reconcile_all([_server("gh", TOKEN=True)], [_agent()])

    assert not runtime_dir.exists()
    assert runner.calls == []


def test_cluster_config_is_handed_back(tmp_path: Path) -> None:
    runner = FakeRunner()
    runtime = AgentRegistryRuntime(
        builder=DesiredStateBuilder(),
        translator=ClusterTranslator(),
        runtime_dir=tmp_path,
        reconciler=LocalReconciler(tmp_path, runner),
    )

    cfg = runtime.reconcile_all([_server("fs")], [_agent()])

    assert isinstance(cfg, ClusterRuntimeConfig)
    assert [c.name for c in cfg.config_maps] == ["researcher-v1-mcp-config"]
    assert runner.calls == []
    assert not (tmp_path / "docker-compose.yaml").exists()


def test_runtime_config_union_dispatches_on_kind(tmp_path: Path) -> None:
    cfg = _local_runtime(tmp_path, FakeRunner()).translator.translate(
        DesiredStateBuilder().build([_server("fs")])
    )

    loaded = runtime_config_adapter.validate_python(cfg.model_dump())
    assert isinstance(loaded, LocalRuntimeConfig)
    assert loaded.compose_yaml() == cfg.compose_yaml()

    cluster = runtime_config_adapter.validate_python({"kind": "kubernetes"})
    assert isinstance(cluster, ClusterRuntimeConfig)
