"""mcp-deployer CLI: reconcile registry run requests into a local or cluster runtime.

Commands:
- reconcile REQUESTS   resolve, translate and apply (local) or print manifests (kubernetes)
- translate REQUESTS   resolve and translate only; print or write the documents
- down / ps / logs     drive docker compose in the runtime directory
"""

from __future__ import annotations

import signal
import threading
from pathlib import Path

import typer
from jsonschema import ValidationError as SchemaError
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from mcp_deployer.config import DEFAULT_GATEWAY_VERSION, Settings
from mcp_deployer.errors import DeployerError, ReconcileCancelled
from mcp_deployer.logging import set_verbose
from mcp_deployer.runtime import (
    AgentRegistryRuntime,
    compose_runner,
    select_translator,
    validate_runtime,
)
from mcp_deployer.state.builder import DesiredStateBuilder
from mcp_deployer.translate.cluster import ClusterRuntimeConfig
from mcp_deployer.translate.compose import LocalRuntimeConfig
from mcp_deployer.validator import load_run_requests

app = typer.Typer(add_completion=False, help="Deploy registry agents and MCP servers")
console = Console()

DEFAULT_RUNTIME_DIR = str(Path.home() / ".arctl" / "runtime")


def _settings(
    runtime: str,
    runtime_dir: str,
    gateway_port: int = 8080,
    gateway_version: str = DEFAULT_GATEWAY_VERSION,
    namespace: str = "",
    health_url: str | None = None,
    verbose: bool = False,
) -> Settings:
    try:
        validate_runtime(runtime)
        settings = Settings(
            runtime=runtime,
            runtime_dir=Path(runtime_dir).expanduser(),
            gateway_port=gateway_port,
            gateway_version=gateway_version,
            default_namespace=namespace,
            health_url=health_url,
            verbose=verbose,
        )
    except (ValueError, ValidationError) as exc:
        rprint(f"[red]Invalid settings:[/red] {exc}")
        raise typer.Exit(code=2) from exc
    set_verbose(verbose)
    return settings


def _fail(exc: Exception) -> None:
    rprint(f"[red]Error:[/red] {exc}")
    raise typer.Exit(code=1) from exc


def _summary(cfg: LocalRuntimeConfig | ClusterRuntimeConfig) -> None:
    table = Table(title=f"Runtime config ({cfg.kind})")
    table.add_column("Kind", style="cyan")
    table.add_column("Name")
    table.add_column("Namespace")
    if isinstance(cfg, LocalRuntimeConfig):
        for name in sorted(cfg.compose.services):
            table.add_row("service", name, "")
        for bind in cfg.gateway.binds:
            for listener in bind.listeners:
                for route in listener.routes:
                    table.add_row("route", route.name, "")
    else:
        for manifest in cfg.manifests():
            meta = manifest["metadata"]
            table.add_row(manifest["kind"], meta["name"], meta.get("namespace", ""))
    console.print(table)


RuntimeOpt = typer.Option("local", "--runtime", envvar="ARCTL_RUNTIME", help='"local" | "kubernetes"')
RuntimeDirOpt = typer.Option(
    DEFAULT_RUNTIME_DIR, "--runtime-dir", envvar="ARCTL_RUNTIME_DIR", help="Runtime working directory"
)


@app.command()
def reconcile(
    requests: str = typer.Argument(..., help="YAML/JSON run-request document"),
    runtime: str = RuntimeOpt,
    runtime_dir: str = RuntimeDirOpt,
    gateway_port: int = typer.Option(8080, "--gateway-port", envvar="AGENT_GATEWAY_PORT"),
    gateway_version: str = typer.Option(
        DEFAULT_GATEWAY_VERSION, "--gateway-version", envvar="TRANSPORT_ADAPTER_VERSION"
    ),
    namespace: str = typer.Option("", "--namespace", envvar="ARCTL_NAMESPACE"),
    health_url: str | None = typer.Option(None, "--health-url", help="Gateway URL to probe"),
    timeout: float = typer.Option(0, "--timeout", help="Seconds before giving up (0 = none)"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    settings = _settings(
        runtime, runtime_dir, gateway_port, gateway_version, namespace, health_url, verbose
    )
    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
    try:
        reqs = load_run_requests(Path(requests))
        cfg = AgentRegistryRuntime.from_settings(settings).reconcile_all(
            reqs.servers, reqs.agents, cancel=cancel, timeout=timeout or None
        )
    except ReconcileCancelled as exc:
        rprint(f"[yellow]Cancelled:[/yellow] {exc}")
        raise typer.Exit(code=130) from exc
    except (DeployerError, SchemaError, ValidationError, OSError) as exc:
        _fail(exc)
    finally:
        signal.signal(signal.SIGINT, previous)

    _summary(cfg)
    if isinstance(cfg, ClusterRuntimeConfig):
        print(cfg.manifests_yaml())
    else:
        rprint(f"[green]Reconciled:[/green] {settings.runtime_dir}")


@app.command()
def translate(
    requests: str = typer.Argument(..., help="YAML/JSON run-request document"),
    runtime: str = RuntimeOpt,
    runtime_dir: str = RuntimeDirOpt,
    gateway_port: int = typer.Option(8080, "--gateway-port", envvar="AGENT_GATEWAY_PORT"),
    gateway_version: str = typer.Option(
        DEFAULT_GATEWAY_VERSION, "--gateway-version", envvar="TRANSPORT_ADAPTER_VERSION"
    ),
    namespace: str = typer.Option("", "--namespace", envvar="ARCTL_NAMESPACE"),
    out: str | None = typer.Option(None, "--out", help="Write to file instead of stdout"),
) -> None:
    settings = _settings(runtime, runtime_dir, gateway_port, gateway_version, namespace)
    try:
        reqs = load_run_requests(Path(requests))
        builder = DesiredStateBuilder(settings.default_namespace, settings.namespace_env)
        desired = builder.build(reqs.servers, reqs.agents)
        cfg = select_translator(settings).translate(desired)
    except (DeployerError, SchemaError, ValidationError, OSError) as exc:
        _fail(exc)

    if isinstance(cfg, LocalRuntimeConfig):
        payload = cfg.compose_yaml() + "---\n" + cfg.gateway_yaml()
    else:
        payload = cfg.manifests_yaml()

    if out:
        Path(out).write_text(payload, encoding="utf-8")
        rprint(f"[green]Written:[/green] {out}")
    else:
        print(payload)


@app.command()
def down(runtime_dir: str = RuntimeDirOpt) -> None:
    settings = _settings("local", runtime_dir)
    try:
        compose_runner(settings).down()
    except DeployerError as exc:
        _fail(exc)
    rprint("[green]Stopped.[/green]")


@app.command()
def ps(runtime_dir: str = RuntimeDirOpt) -> None:
    settings = _settings("local", runtime_dir)
    try:
        print(compose_runner(settings).ps())
    except DeployerError as exc:
        _fail(exc)


@app.command()
def logs(
    services: list[str] | None = typer.Argument(None, help="Services to show"),
    runtime_dir: str = RuntimeDirOpt,
    tail: int | None = typer.Option(None, "--tail", help="Lines from the end of each log"),
) -> None:
    settings = _settings("local", runtime_dir)
    try:
        print(compose_runner(settings).logs(services or [], tail=tail))
    except DeployerError as exc:
        _fail(exc)


if __name__ == "__main__":
    app()
