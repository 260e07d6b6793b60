from __future__ import annotations

import json
import sys
import threading
import time
from pathlib import Path

import pytest

from mcp_deployer.errors import (
    ComposeError,
    HealthCheckError,
    ReconcileCancelled,
    ReconcileTimeout,
)
from mcp_deployer.reconcile.compose_runner import ComposeRunner, ComposeState
from mcp_deployer.reconcile.local import LocalReconciler
from mcp_deployer.state.models import (
    Agent,
    AgentDeployment,
    DesiredState,
    LocalMCPServer,
    MCPServer,
    MCPServerDeployment,
)
from mcp_deployer.translate.compose import ComposeTranslator
from mcp_deployer.types import ResolvedServer

FAKE_COMPOSE = """\
import json, os, sys, time
from pathlib import Path

with Path("calls.jsonl").open("a", encoding="utf-8") as f:
    f.write(json.dumps(sys.argv[1:]) + "\\n")

mode = os.environ.get("FAKE_COMPOSE_MODE", "ok")
if mode == "fail":
    print("pulling agent_gateway")
    print("error: manifest unknown", file=sys.stderr)
    sys.exit(3)
if mode == "hang":
    print("starting", flush=True)
    time.sleep(60)
print("done " + " ".join(sys.argv[1:]))
"""


@pytest.fixture
def runner(tmp_path: Path) -> ComposeRunner:
    script = tmp_path / "fake_compose.py"
    script.write_text(FAKE_COMPOSE, encoding="utf-8")
    workdir = tmp_path / "runtime"
    workdir.mkdir()
    return ComposeRunner(workdir, command=[sys.executable, str(script)], poll_interval=0.05)


def _calls(runner: ComposeRunner) -> list[list[str]]:
    lines = (runner.workdir / "calls.jsonl").read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


@pytest.mark.timeout(20)
def test_up_reaches_ready(runner: ComposeRunner) -> None:
    output = runner.up()

    assert "done up" in output
    assert _calls(runner) == [["up", "-d", "--remove-orphans", "--force-recreate"]]
    assert runner.history == [
        ComposeState.IDLE,
        ComposeState.APPLYING,
        ComposeState.WAITING_HEALTHY,
        ComposeState.READY,
    ]


@pytest.mark.timeout(20)
def test_failure_carries_combined_output(runner: ComposeRunner, monkeypatch) -> None:
    monkeypatch.setenv("FAKE_COMPOSE_MODE", "fail")

    with pytest.raises(ComposeError) as exc:
        runner.up()

    assert exc.value.returncode == 3
    assert "pulling agent_gateway" in exc.value.output
    assert "manifest unknown" in exc.value.output
    assert runner.state == ComposeState.FAILED


@pytest.mark.timeout(20)
def test_cancel_terminates_subprocess(runner: ComposeRunner, monkeypatch) -> None:
    monkeypatch.setenv("FAKE_COMPOSE_MODE", "hang")
    cancel = threading.Event()
    threading.Timer(0.5, cancel.set).start()

    started = time.monotonic()
    with pytest.raises(ReconcileCancelled) as exc:
        runner.up(cancel=cancel)

    assert type(exc.value) is ReconcileCancelled
    assert time.monotonic() - started < 15
    assert runner.state == ComposeState.CANCELLED


@pytest.mark.timeout(20)
def test_deadline_is_a_timeout(runner: ComposeRunner, monkeypatch) -> None:
    monkeypatch.setenv("FAKE_COMPOSE_MODE", "hang")

    with pytest.raises(ReconcileTimeout):
        runner.up(timeout=0.5)
    assert runner.state == ComposeState.CANCELLED


@pytest.mark.timeout(20)
def test_rerun_after_failure(runner: ComposeRunner, monkeypatch) -> None:
    monkeypatch.setenv("FAKE_COMPOSE_MODE", "fail")
    with pytest.raises(ComposeError):
        runner.up()

    monkeypatch.setenv("FAKE_COMPOSE_MODE", "ok")
    runner.up()
    assert runner.state == ComposeState.READY


@pytest.mark.timeout(20)
def test_waits_for_healthy_gateway(runner: ComposeRunner) -> None:
    answers = iter([False, False, True])
    runner.health_url = "http://127.0.0.1:8080/"
    runner.probe = lambda url: next(answers)

    runner.up()

    assert runner.state == ComposeState.READY


@pytest.mark.timeout(20)
def test_unhealthy_gateway_fails(runner: ComposeRunner) -> None:
    runner.health_url = "http://127.0.0.1:8080/"
    runner.health_timeout = 0.3
    runner.probe = lambda url: False

    with pytest.raises(HealthCheckError):
        runner.up()
    assert runner.state == ComposeState.FAILED


def test_missing_tool(tmp_path: Path) -> None:
    runner = ComposeRunner(tmp_path, command=["definitely-not-a-compose-binary"])
    with pytest.raises(ComposeError) as exc:
        runner.ps()
    assert exc.value.returncode == 127


def test_illegal_transition(runner: ComposeRunner) -> None:
    with pytest.raises(RuntimeError, match="illegal"):
        runner._transition(ComposeState.READY)


@pytest.mark.timeout(20)
def test_down_logs_ps_arguments(runner: ComposeRunner) -> None:
    runner.up()
    runner.logs(["fs"], tail=10)
    runner.ps()
    runner.down()

    assert _calls(runner)[1:] == [
        ["logs", "--no-color", "--tail", "10", "fs"],
        ["ps"],
        ["down", "--remove-orphans"],
    ]
    assert runner.state == ComposeState.IDLE


@pytest.mark.timeout(20)
def test_local_reconciler_end_to_end(runner: ComposeRunner) -> None:
    server = MCPServer(
        name="fs",
        type="local",
        local=LocalMCPServer(deployment=MCPServerDeployment(cmd="npx", args=["-y", "fs"])),
    )
    cfg = ComposeTranslator(str(runner.workdir), 8080, "gw:1").translate(
        DesiredState(mcp_servers=[server])
    )

    agent = Agent(
        name="researcher",
        version="v1",
        deployment=AgentDeployment(image="researcher:1"),
        resolved_mcp_servers=[ResolvedServer(name="fs", kind="command", command="npx")],
    )

    LocalReconciler(runner.workdir, runner).apply(cfg, [agent])

    assert (runner.workdir / "docker-compose.yaml").exists()
    assert (runner.workdir / "agent_gateway" / "local.yaml").exists()
    manifest = json.loads((runner.workdir / "mcp-servers-researcher.json").read_text(encoding="utf-8"))
    assert manifest == [{"name": "fs", "type": "command"}]
    assert runner.state == ComposeState.READY
