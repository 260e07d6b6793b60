"""Shared Pydantic models: registry-side inputs and resolved servers."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class Argument(BaseModel):
    name: str = ""
    type: Literal["positional", "named"] = "positional"
    value: str = ""
    default: str = ""
    is_required: bool = False


class KeyValueSpec(BaseModel):
    """An environment variable or HTTP header declared by a server."""

    name: str
    value: str = ""
    default: str = ""
    is_required: bool = False
    description: str | None = None


class PackageTransport(BaseModel):
    type: str = "stdio"
    url: str | None = None


class PackageAlternative(BaseModel):
    # free-form on purpose: unknown ecosystems are rejected by the resolver
    registry_type: str
    identifier: str
    version: str = ""
    runtime_hint: str = ""
    runtime_arguments: list[Argument] = Field(default_factory=list)
    package_arguments: list[Argument] = Field(default_factory=list)
    environment_variables: list[KeyValueSpec] = Field(default_factory=list)
    transport: PackageTransport = Field(default_factory=PackageTransport)


class RemoteAlternative(BaseModel):
    type: str = "streamable-http"
    url: str = ""
    headers: list[KeyValueSpec] = Field(default_factory=list)


class ServerSpec(BaseModel):
    name: str
    version: str = ""
    description: str | None = None
    packages: list[PackageAlternative] = Field(default_factory=list)
    remotes: list[RemoteAlternative] = Field(default_factory=list)


class ResolvedServer(BaseModel):
    """A server after resolution: either a command to launch or a remote endpoint."""

    name: str
    kind: Literal["command", "remote"]
    image: str = ""
    command: str = ""
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    transport: Literal["stdio", "http"] = "stdio"
    port: int | None = None
    path: str | None = None
    url: str = ""
    headers: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_kind_payload(self) -> ResolvedServer:
        if self.kind == "remote":
            if self.image or self.command or self.args or self.env:
                raise ValueError(f"remote server {self.name!r} cannot carry launch parameters")
        elif self.url or self.headers:
            raise ValueError(f"command server {self.name!r} cannot carry a url or headers")
        return self


class MCPServerRunRequest(BaseModel):
    server: ServerSpec
    prefer_remote: bool = False
    env_values: dict[str, str] = Field(default_factory=dict)
    arg_values: dict[str, str] = Field(default_factory=dict)
    header_values: dict[str, str] = Field(default_factory=dict)
    namespace: str = ""


class AgentSpec(BaseModel):
    name: str
    version: str
    image: str
    description: str | None = None
    environment_variables: list[KeyValueSpec] = Field(default_factory=list)


class AgentRunRequest(BaseModel):
    agent: AgentSpec
    env_values: dict[str, str] = Field(default_factory=dict)
    mcp_servers: list[MCPServerRunRequest] = Field(default_factory=list)


class RunRequests(BaseModel):
    """Top-level request document accepted by the CLI."""

    servers: list[MCPServerRunRequest] = Field(default_factory=list)
    agents: list[AgentRunRequest] = Field(default_factory=list)
