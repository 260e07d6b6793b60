from __future__ import annotations

from pathlib import Path

import yaml
from typer.testing import CliRunner

from mcp_deployer.cli import app

FIXTURE = Path(__file__).resolve().parents[2] / "fixtures" / "run-requests" / "mixed.yaml"

runner = CliRunner()


def test_translate_kubernetes_prints_manifests(tmp_path: Path) -> None:
    out = tmp_path / "manifests.yaml"
    result = runner.invoke(
        app,
        ["translate", str(FIXTURE), "--runtime", "kubernetes", "--out", str(out)],
    )

    assert result.exit_code == 0, result.output
    docs = list(yaml.safe_load_all(out.read_text(encoding="utf-8")))
    kinds = sorted(d["kind"] for d in docs)
    assert kinds == ["Agent", "ConfigMap", "MCPServer", "RemoteMCPServer"]
    agent = next(d for d in docs if d["kind"] == "Agent")
    assert agent["metadata"] == {"name": "researcher-v1", "namespace": "production"}


def test_translate_local_writes_compose_and_gateway(tmp_path: Path) -> None:
    out = tmp_path / "local.yaml"
    result = runner.invoke(
        app,
        [
            "translate",
            str(FIXTURE),
            "--runtime-dir",
            str(tmp_path / "rt"),
            "--gateway-port",
            "9000",
            "--out",
            str(out),
        ],
    )

    assert result.exit_code == 0, result.output
    compose, gateway = yaml.safe_load_all(out.read_text(encoding="utf-8"))
    assert sorted(compose["services"]) == ["agent_gateway", "filesystem"]
    routes = gateway["binds"][0]["listeners"][0]["routes"]
    assert [r["name"] for r in routes] == ["brave-search", "filesystem"]
    assert not (tmp_path / "rt").exists()


def test_bad_gateway_version_is_a_usage_error(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["translate", str(FIXTURE), "--gateway-version", "1.0;evil"]
    )
    assert result.exit_code == 2


def test_resolution_failure_exits_1(tmp_path: Path) -> None:
    doc = tmp_path / "reqs.yaml"
    doc.write_text(
        yaml.safe_dump(
            {
                "servers": [
                    {
                        "server": {
                            "name": "gh",
                            "packages": [
                                {
                                    "registry_type": "npm",
                                    "identifier": "gh-mcp",
                                    "environment_variables": [
                                        {"name": "GITHUB_TOKEN", "is_required": True}
                                    ],
                                }
                            ],
                        }
                    }
                ]
            }
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["translate", str(doc)])

    assert result.exit_code == 1
    assert "GITHUB_TOKEN" in result.output


def test_bad_remote_port_exits_1(tmp_path: Path) -> None:
    doc = tmp_path / "reqs.yaml"
    doc.write_text(
        yaml.safe_dump(
            {"servers": [{"server": {"name": "r", "remotes": [{"url": "http://host:notaport/mcp"}]}}]}
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["translate", str(doc), "--runtime", "kubernetes"])

    assert result.exit_code == 1
    assert "invalid URL" in result.output
