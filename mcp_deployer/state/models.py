"""Runtime-agnostic desired state."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from mcp_deployer.errors import DuplicateServerError
from mcp_deployer.types import ResolvedServer


class AgentDeployment(BaseModel):
    image: str
    env: dict[str, str] = Field(default_factory=dict)


class Agent(BaseModel):
    name: str
    version: str
    deployment: AgentDeployment
    resolved_mcp_servers: list[ResolvedServer] = Field(default_factory=list)

    @property
    def resource_name(self) -> str:
        return f"{self.name}-{self.version}"


class MCPServerDeployment(BaseModel):
    image: str = ""
    cmd: str = ""
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class HTTPTransport(BaseModel):
    port: int = 0
    path: str = ""


class LocalMCPServer(BaseModel):
    transport_type: Literal["stdio", "http"] = "stdio"
    deployment: MCPServerDeployment = Field(default_factory=MCPServerDeployment)
    http: HTTPTransport | None = None


class RemoteMCPServer(BaseModel):
    scheme: str = "http"
    host: str
    port: int
    path: str = ""
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}{self.path}"


class MCPServer(BaseModel):
    name: str
    namespace: str = ""
    type: Literal["local", "remote"]
    local: LocalMCPServer | None = None
    remote: RemoteMCPServer | None = None

    @model_validator(mode="after")
    def _check_variant(self) -> MCPServer:
        if self.type == "local" and self.local is None:
            raise ValueError(f"local MCP server {self.name!r} needs a local spec")
        if self.type == "remote" and self.remote is None:
            raise ValueError(f"remote MCP server {self.name!r} needs a remote spec")
        return self


class DesiredState(BaseModel):
    agents: list[Agent] = Field(default_factory=list)
    mcp_servers: list[MCPServer] = Field(default_factory=list)

    def ensure_unique_servers(self) -> None:
        seen: set[str] = set()
        for server in self.mcp_servers:
            if server.name in seen:
                raise DuplicateServerError(server.name)
            seen.add(server.name)
