"""Cluster runtime translation: custom resources for agents and MCP servers.

Every resource derived from one entity carries that entity's namespace. An
agent's namespace comes from the reserved ``namespace_env`` entry of its
environment; its ConfigMap always follows the agent.
"""

from __future__ import annotations

from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from mcp_deployer.errors import TranslationError
from mcp_deployer.logging import get_logger
from mcp_deployer.reconcile.sidechannel import render_manifest
from mcp_deployer.state.builder import NAMESPACE_ENV
from mcp_deployer.state.models import Agent, DesiredState, MCPServer

API_VERSION = "kagent.dev/v1alpha2"
MCP_CONFIG_KEY = "mcp-servers.json"
MCP_CONFIG_VOLUME = "mcp-config"
MCP_CONFIG_MOUNT = "/config"

log = get_logger(__name__)


def _metadata(name: str, namespace: str) -> dict[str, Any]:
    meta: dict[str, Any] = {"name": name}
    if namespace:
        meta["namespace"] = namespace
    return meta


def _env_list(env: dict[str, str]) -> list[dict[str, str]]:
    return [{"name": k, "value": v} for k, v in sorted(env.items())]


class Volume(BaseModel):
    name: str
    config_map: str


class VolumeMount(BaseModel):
    name: str
    mount_path: str


class AgentDeploymentSpec(BaseModel):
    image: str
    env: dict[str, str] = Field(default_factory=dict)
    volumes: list[Volume] = Field(default_factory=list)
    volume_mounts: list[VolumeMount] = Field(default_factory=list)


class AgentResource(BaseModel):
    name: str
    namespace: str = ""
    deployment: AgentDeploymentSpec

    def to_manifest(self) -> dict[str, Any]:
        dep = self.deployment
        deployment: dict[str, Any] = {"image": dep.image, "env": _env_list(dep.env)}
        if dep.volumes:
            deployment["volumes"] = [
                {"name": v.name, "configMap": {"name": v.config_map}} for v in dep.volumes
            ]
        if dep.volume_mounts:
            deployment["volumeMounts"] = [
                {"name": m.name, "mountPath": m.mount_path} for m in dep.volume_mounts
            ]
        return {
            "apiVersion": API_VERSION,
            "kind": "Agent",
            "metadata": _metadata(self.name, self.namespace),
            "spec": {"type": "BYO", "byo": {"deployment": deployment}},
        }


class MCPServerDeploymentSpec(BaseModel):
    image: str = ""
    cmd: str = ""
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    port: int | None = None


class MCPServerResource(BaseModel):
    name: str
    namespace: str = ""
    transport_type: Literal["stdio", "http"]
    deployment: MCPServerDeploymentSpec
    http_path: str | None = None

    def to_manifest(self) -> dict[str, Any]:
        dep = self.deployment
        deployment: dict[str, Any] = {"image": dep.image}
        if dep.cmd:
            deployment["cmd"] = dep.cmd
        if dep.args:
            deployment["args"] = list(dep.args)
        if dep.env:
            deployment["env"] = dict(sorted(dep.env.items()))
        if dep.port:
            deployment["port"] = dep.port
        spec: dict[str, Any] = {"transportType": self.transport_type, "deployment": deployment}
        if self.transport_type == "http":
            spec["httpTransport"] = {"targetPort": dep.port, "path": self.http_path or ""}
        else:
            spec["stdioTransport"] = {}
        return {
            "apiVersion": API_VERSION,
            "kind": "MCPServer",
            "metadata": _metadata(self.name, self.namespace),
            "spec": spec,
        }


class RemoteMCPServerResource(BaseModel):
    name: str
    namespace: str = ""
    url: str
    protocol: str = "STREAMABLE_HTTP"
    headers: dict[str, str] = Field(default_factory=dict)

    def to_manifest(self) -> dict[str, Any]:
        spec: dict[str, Any] = {"url": self.url, "protocol": self.protocol}
        if self.headers:
            spec["headersFrom"] = [
                {"name": k, "value": v} for k, v in sorted(self.headers.items())
            ]
        return {
            "apiVersion": API_VERSION,
            "kind": "RemoteMCPServer",
            "metadata": _metadata(self.name, self.namespace),
            "spec": spec,
        }


class ConfigMapResource(BaseModel):
    name: str
    namespace: str = ""
    data: dict[str, str] = Field(default_factory=dict)

    def to_manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": _metadata(self.name, self.namespace),
            "data": dict(self.data),
        }


class ClusterRuntimeConfig(BaseModel):
    kind: Literal["kubernetes"] = "kubernetes"
    agents: list[AgentResource] = Field(default_factory=list)
    mcp_servers: list[MCPServerResource] = Field(default_factory=list)
    remote_mcp_servers: list[RemoteMCPServerResource] = Field(default_factory=list)
    config_maps: list[ConfigMapResource] = Field(default_factory=list)

    def manifests(self) -> list[dict[str, Any]]:
        # ConfigMaps first so agents never mount a missing volume
        resources = [*self.config_maps, *self.mcp_servers, *self.remote_mcp_servers, *self.agents]
        return [r.to_manifest() for r in resources]

    def manifests_yaml(self) -> str:
        return yaml.safe_dump_all(self.manifests(), sort_keys=False, default_flow_style=False)


class ClusterTranslator:
    def __init__(self, default_namespace: str = "", namespace_env: str = NAMESPACE_ENV) -> None:
        self.default_namespace = default_namespace
        self.namespace_env = namespace_env

    def agent_namespace(self, agent: Agent) -> str:
        return agent.deployment.env.get(self.namespace_env) or self.default_namespace

    def server_namespace(self, server: MCPServer) -> str:
        if server.namespace:
            return server.namespace
        if server.local is not None:
            return server.local.deployment.env.get(self.namespace_env) or self.default_namespace
        return self.default_namespace

    def translate_agent(self, agent: Agent) -> tuple[AgentResource, ConfigMapResource | None]:
        namespace = self.agent_namespace(agent)
        name = agent.resource_name
        deployment = AgentDeploymentSpec(image=agent.deployment.image, env=agent.deployment.env)

        if not agent.resolved_mcp_servers:
            return AgentResource(name=name, namespace=namespace, deployment=deployment), None

        config_map = ConfigMapResource(
            name=f"{name}-mcp-config",
            namespace=namespace,
            data={MCP_CONFIG_KEY: render_manifest(agent.resolved_mcp_servers)},
        )
        deployment.volumes.append(Volume(name=MCP_CONFIG_VOLUME, config_map=config_map.name))
        deployment.volume_mounts.append(
            VolumeMount(name=MCP_CONFIG_VOLUME, mount_path=MCP_CONFIG_MOUNT)
        )
        return AgentResource(name=name, namespace=namespace, deployment=deployment), config_map

    def translate_server(self, server: MCPServer) -> MCPServerResource | RemoteMCPServerResource:
        namespace = self.server_namespace(server)
        if server.type == "remote":
            return RemoteMCPServerResource(
                name=server.name,
                namespace=namespace,
                url=server.remote.url,
                headers=server.remote.headers,
            )

        local = server.local
        dep = local.deployment
        port = local.http.port if local.http is not None else None
        if local.transport_type == "http" and not port:
            raise TranslationError(f"HTTP transport for MCP server {server.name!r} requires a port")
        return MCPServerResource(
            name=server.name,
            namespace=namespace,
            transport_type=local.transport_type,
            deployment=MCPServerDeploymentSpec(
                image=dep.image, cmd=dep.cmd, args=dep.args, env=dep.env, port=port
            ),
            http_path=local.http.path if local.http is not None else None,
        )

    def translate(self, desired: DesiredState) -> ClusterRuntimeConfig:
        desired.ensure_unique_servers()
        out = ClusterRuntimeConfig()

        for agent in desired.agents:
            resource, config_map = self.translate_agent(agent)
            out.agents.append(resource)
            if config_map is not None:
                out.config_maps.append(config_map)

        for server in desired.mcp_servers:
            resource = self.translate_server(server)
            if isinstance(resource, RemoteMCPServerResource):
                out.remote_mcp_servers.append(resource)
            else:
                out.mcp_servers.append(resource)

        log.debug(
            "translated cluster runtime: agents=%d configmaps=%d mcpservers=%d remotes=%d",
            len(out.agents),
            len(out.config_maps),
            len(out.mcp_servers),
            len(out.remote_mcp_servers),
        )
        return out
