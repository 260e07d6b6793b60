"""Per-agent resolved MCP server manifests.

Agents read ``mcp-servers-<agent>.json`` (mounted at ``/config``) to find their
MCP dependencies without calling the registry. Command-type entries carry no
URL: the agent builds ``http://<name>:3000/mcp`` itself.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from mcp_deployer.logging import get_logger
from mcp_deployer.state.models import Agent
from mcp_deployer.types import ResolvedServer

log = get_logger(__name__)


def manifest_entries(servers: Iterable[ResolvedServer]) -> list[dict[str, Any]]:
    entries: list[dict[str, Any]] = []
    for server in servers:
        entry: dict[str, Any] = {"name": server.name, "type": server.kind}
        if server.kind == "remote":
            entry["url"] = server.url
            if server.headers:
                entry["headers"] = dict(sorted(server.headers.items()))
        entries.append(entry)
    return entries


def render_manifest(servers: Iterable[ResolvedServer]) -> str:
    return json.dumps(manifest_entries(servers), indent=2)


def manifest_path(runtime_dir: Path, agent_name: str) -> Path:
    return runtime_dir / f"mcp-servers-{agent_name}.json"


def write_agent_manifest(
    runtime_dir: Path, agent_name: str, servers: Iterable[ResolvedServer]
) -> Path:
    path = manifest_path(runtime_dir, agent_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_manifest(servers), encoding="utf-8")
    log.debug("wrote MCP server config for agent %s to %s", agent_name, path)
    return path


def write_all(runtime_dir: Path, agents: Iterable[Agent]) -> list[Path]:
    """Write manifests for every agent with dependencies; failures only warn."""
    written: list[Path] = []
    for agent in agents:
        if not agent.resolved_mcp_servers:
            continue
        try:
            written.append(write_agent_manifest(runtime_dir, agent.name, agent.resolved_mcp_servers))
        except OSError as exc:
            log.warning(
                "failed to write MCP server config for agent %s: %s",
                agent.name,
                exc,
                extra={"agent": agent.name},
            )
    return written
