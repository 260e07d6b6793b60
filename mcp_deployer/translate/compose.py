"""Local runtime translation: a compose project plus the gateway routing config.

Every local MCP server gets one compose service; remote servers only get a
gateway route. One ``agent_gateway`` service fronts them all.
"""

from __future__ import annotations

import os
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from mcp_deployer.errors import DuplicateServerError, TranslationError
from mcp_deployer.logging import get_logger
from mcp_deployer.resolve.packages import NODE_IMAGE, UV_IMAGE
from mcp_deployer.state.models import DesiredState, MCPServer
from mcp_deployer.translate.gateway import GatewayConfig, build_gateway_config

GATEWAY_SERVICE = "agent_gateway"
GATEWAY_CONFIG_DIR = "agent_gateway"
GATEWAY_CONFIG_FILE = "local.yaml"
COMPOSE_FILE = "docker-compose.yaml"

# used only when resolution produced no image
_COMMAND_IMAGES = {"uvx": UV_IMAGE, "npx": NODE_IMAGE}

log = get_logger(__name__)


class PortMapping(BaseModel):
    name: str = "http"
    target: int
    published: str
    protocol: str = "tcp"


class VolumeMount(BaseModel):
    type: str = "bind"
    source: str
    target: str


class ComposeService(BaseModel):
    name: str
    image: str
    command: list[str] = Field(default_factory=list)
    environment: dict[str, str] = Field(default_factory=dict)
    ports: list[PortMapping] = Field(default_factory=list)
    expose: list[str] = Field(default_factory=list)
    volumes: list[VolumeMount] = Field(default_factory=list)
    stdin_open: bool = False

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"image": self.image}
        if self.command:
            doc["command"] = list(self.command)
        if self.environment:
            doc["environment"] = dict(sorted(self.environment.items()))
        if self.ports:
            doc["ports"] = [p.model_dump() for p in self.ports]
        if self.expose:
            doc["expose"] = list(self.expose)
        if self.volumes:
            doc["volumes"] = [v.model_dump() for v in self.volumes]
        if self.stdin_open:
            doc["stdin_open"] = True
        return doc


class ComposeProject(BaseModel):
    name: str
    working_dir: str
    services: dict[str, ComposeService] = Field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "services": {name: self.services[name].to_document() for name in sorted(self.services)},
        }


def render_yaml(doc: dict[str, Any]) -> str:
    return yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)


class LocalRuntimeConfig(BaseModel):
    kind: Literal["local"] = "local"
    compose: ComposeProject
    gateway: GatewayConfig

    def compose_yaml(self) -> str:
        return render_yaml(self.compose.to_document())

    def gateway_yaml(self) -> str:
        return render_yaml(self.gateway.to_document())


class ComposeTranslator:
    def __init__(
        self,
        working_dir: str,
        gateway_port: int,
        gateway_image: str,
        project_name: str = "ai_registry",
    ) -> None:
        self.working_dir = working_dir
        self.gateway_port = gateway_port
        self.gateway_image = gateway_image
        self.project_name = project_name

    def gateway_service(self) -> ComposeService:
        port = self.gateway_port
        if not port:
            raise TranslationError("agent gateway port must be specified")
        return ComposeService(
            name=GATEWAY_SERVICE,
            image=self.gateway_image,
            command=["-f", f"/config/{GATEWAY_CONFIG_FILE}"],
            ports=[PortMapping(target=port, published=str(port))],
            volumes=[
                VolumeMount(
                    source=os.path.join(self.working_dir, GATEWAY_CONFIG_DIR), target="/config"
                )
            ],
        )

    def server_service(self, server: MCPServer) -> ComposeService:
        dep = server.local.deployment
        image = dep.image or _COMMAND_IMAGES.get(dep.cmd, "")
        if not image:
            raise TranslationError(
                f"image must be specified for MCP server {server.name!r} "
                "or the command must be 'uvx' or 'npx'"
            )

        command = ([dep.cmd] if dep.cmd else []) + list(dep.args)
        service = ComposeService(name=server.name, image=image, command=command, environment=dep.env)
        if server.local.transport_type == "stdio":
            service.stdin_open = True
        elif server.local.http is not None and server.local.http.port:
            service.expose = [str(server.local.http.port)]
        return service

    def translate(self, desired: DesiredState) -> LocalRuntimeConfig:
        desired.ensure_unique_servers()
        services = {GATEWAY_SERVICE: self.gateway_service()}

        for server in desired.mcp_servers:
            if server.type != "local":
                continue
            if server.name in services:
                raise DuplicateServerError(server.name)
            services[server.name] = self.server_service(server)

        gateway = build_gateway_config(desired.mcp_servers, self.gateway_port)
        log.debug("translated local runtime: %d compose services", len(services))
        return LocalRuntimeConfig(
            compose=ComposeProject(
                name=self.project_name, working_dir=self.working_dir, services=services
            ),
            gateway=gateway,
        )
