"""Desired state builder: run requests in, fully resolved DesiredState out."""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlparse

from mcp_deployer.errors import ResolutionError
from mcp_deployer.logging import get_logger
from mcp_deployer.resolve.packages import resolve_server
from mcp_deployer.resolve.params import resolve_environment
from mcp_deployer.state.models import (
    Agent,
    AgentDeployment,
    DesiredState,
    HTTPTransport,
    LocalMCPServer,
    MCPServer,
    MCPServerDeployment,
    RemoteMCPServer,
)
from mcp_deployer.types import AgentRunRequest, MCPServerRunRequest, ResolvedServer

NAMESPACE_ENV = "KAGENT_NAMESPACE"

_DEFAULT_PORTS = {"http": 80, "https": 443}

log = get_logger(__name__)


def resolve_request(req: MCPServerRunRequest) -> ResolvedServer:
    return resolve_server(
        req.server,
        prefer_remote=req.prefer_remote,
        env_values=req.env_values,
        arg_values=req.arg_values,
        header_values=req.header_values,
    )


def remote_from_url(name: str, url: str, headers: dict[str, str] | None = None) -> RemoteMCPServer:
    parsed = urlparse(url)
    if not parsed.hostname:
        raise ResolutionError(f"server {name!r} remote URL has no host: {url}")
    scheme = parsed.scheme or "http"
    try:
        port = parsed.port or _DEFAULT_PORTS.get(scheme, 80)
    except ValueError as exc:
        raise ResolutionError(f"server {name!r} has an invalid URL {url!r}: {exc}") from exc
    return RemoteMCPServer(
        scheme=scheme,
        host=parsed.hostname,
        port=port,
        path=parsed.path,
        headers=dict(headers or {}),
    )


def to_mcp_server(resolved: ResolvedServer, namespace: str = "") -> MCPServer:
    if resolved.kind == "remote":
        return MCPServer(
            name=resolved.name,
            namespace=namespace,
            type="remote",
            remote=remote_from_url(resolved.name, resolved.url, resolved.headers),
        )

    local = LocalMCPServer(
        transport_type=resolved.transport,
        deployment=MCPServerDeployment(
            image=resolved.image,
            cmd=resolved.command,
            args=list(resolved.args),
            env=dict(resolved.env),
        ),
    )
    if resolved.transport == "http":
        local.http = HTTPTransport(port=resolved.port or 0, path=resolved.path or "")
    return MCPServer(name=resolved.name, namespace=namespace, type="local", local=local)


class DesiredStateBuilder:
    """Resolves server and agent run requests into a :class:`DesiredState`.

    The namespace of a standalone server is, in order: the request's explicit
    ``namespace``, the ``namespace_env`` entry of its env overrides, then
    ``default_namespace``.
    """

    def __init__(self, default_namespace: str = "", namespace_env: str = NAMESPACE_ENV) -> None:
        self.default_namespace = default_namespace
        self.namespace_env = namespace_env

    def _namespace_for(self, req: MCPServerRunRequest) -> str:
        return req.namespace or req.env_values.get(self.namespace_env) or self.default_namespace

    def build_server(self, req: MCPServerRunRequest) -> MCPServer:
        return to_mcp_server(resolve_request(req), self._namespace_for(req))

    def build_agent(self, req: AgentRunRequest) -> Agent:
        spec = req.agent
        env = resolve_environment(spec.environment_variables, req.env_values, spec.name)
        resolved = [resolve_request(dep) for dep in req.mcp_servers]
        return Agent(
            name=spec.name,
            version=spec.version,
            deployment=AgentDeployment(image=spec.image, env=env),
            resolved_mcp_servers=resolved,
        )

    def build(
        self,
        server_requests: Iterable[MCPServerRunRequest] = (),
        agent_requests: Iterable[AgentRunRequest] = (),
    ) -> DesiredState:
        state = DesiredState(
            mcp_servers=[self.build_server(req) for req in server_requests],
            agents=[self.build_agent(req) for req in agent_requests],
        )
        state.ensure_unique_servers()

        log.debug(
            "desired state: agents=%d MCP servers=%d", len(state.agents), len(state.mcp_servers)
        )
        return state
