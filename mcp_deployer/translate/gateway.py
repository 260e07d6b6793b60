"""Agent gateway routing model.

The gateway exposes every MCP server under ``/<name>/mcp``. Documents are
built from plain dicts in a fixed key order and routes are sorted by name so
that the same desired state always serialises to the same bytes.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, Field, model_validator

from mcp_deployer.errors import TranslationError, UnsupportedTransportError
from mcp_deployer.state.models import MCPServer


class StdioTarget(BaseModel):
    cmd: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class SSETarget(BaseModel):
    host: str
    port: int
    path: str = ""


class MCPTarget(BaseModel):
    name: str
    stdio: StdioTarget | None = None
    sse: SSETarget | None = None

    @model_validator(mode="after")
    def _one_target(self) -> MCPTarget:
        if (self.stdio is None) == (self.sse is None):
            raise ValueError(f"target {self.name!r} must be exactly one of stdio or sse")
        return self

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"name": self.name}
        if self.stdio is not None:
            doc["stdio"] = {
                "cmd": self.stdio.cmd,
                "args": list(self.stdio.args),
                "env": dict(sorted(self.stdio.env.items())),
            }
        else:
            doc["sse"] = {"host": self.sse.host, "port": self.sse.port, "path": self.sse.path}
        return doc


class Backend(BaseModel):
    weight: int = 100
    targets: list[MCPTarget] = Field(default_factory=list)


class Route(BaseModel):
    name: str
    path_prefix: str
    backends: list[Backend] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "matches": [{"path": {"pathPrefix": self.path_prefix}}],
            "backends": [
                {"weight": b.weight, "mcp": {"targets": [t.to_document() for t in b.targets]}}
                for b in self.backends
            ],
        }


class Listener(BaseModel):
    name: str = "default"
    protocol: str = "HTTP"
    routes: list[Route] = Field(default_factory=list)


class Bind(BaseModel):
    port: int
    listeners: list[Listener] = Field(default_factory=list)


class GatewayConfig(BaseModel):
    binds: list[Bind] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        return {
            "config": {},
            "binds": [
                {
                    "port": bind.port,
                    "listeners": [
                        {
                            "name": listener.name,
                            "protocol": listener.protocol,
                            "routes": [r.to_document() for r in listener.routes],
                        }
                        for listener in bind.listeners
                    ],
                }
                for bind in self.binds
            ],
        }


def target_for(server: MCPServer) -> MCPTarget:
    if server.type == "remote":
        remote = server.remote
        return MCPTarget(
            name=server.name, sse=SSETarget(host=remote.host, port=remote.port, path=remote.path)
        )

    local = server.local
    if local.transport_type == "stdio":
        dep = local.deployment
        return MCPTarget(
            name=server.name, stdio=StdioTarget(cmd=dep.cmd, args=dep.args, env=dep.env)
        )
    if local.transport_type == "http":
        if local.http is None or not local.http.port:
            raise TranslationError(f"HTTP transport for MCP server {server.name!r} requires a port")
        # compose service name doubles as the DNS name on the project network
        return MCPTarget(
            name=server.name,
            sse=SSETarget(host=server.name, port=local.http.port, path=local.http.path),
        )
    raise UnsupportedTransportError(server.name, local.transport_type)


def build_gateway_config(servers: Iterable[MCPServer], port: int) -> GatewayConfig:
    routes = [
        Route(
            name=server.name,
            path_prefix=f"{server.name}/mcp",
            backends=[Backend(weight=100, targets=[target_for(server)])],
        )
        for server in servers
    ]
    routes.sort(key=lambda r: r.name)
    return GatewayConfig(
        binds=[Bind(port=port, listeners=[Listener(name="default", protocol="HTTP", routes=routes)])]
    )
