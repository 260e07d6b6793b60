"""Engine settings.

All knobs are explicit fields; nothing below the CLI reads the process
environment. The CLI maps environment variables onto these fields.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

GATEWAY_REPOSITORY = "ghcr.io/agentgateway/agentgateway"
DEFAULT_GATEWAY_VERSION = "0.9.0"

_VERSION_RE = re.compile(r"^[a-zA-Z0-9.\-]+$")


class Settings(BaseModel):
    runtime: Literal["local", "kubernetes"] = "local"
    runtime_dir: Path = Field(default_factory=lambda: Path.home() / ".arctl" / "runtime")
    gateway_port: int = Field(default=8080, ge=0, le=65535)
    gateway_repository: str = GATEWAY_REPOSITORY
    gateway_version: str = DEFAULT_GATEWAY_VERSION
    default_namespace: str = ""
    namespace_env: str = "KAGENT_NAMESPACE"
    compose_command: list[str] = Field(default_factory=lambda: ["docker", "compose"])
    health_url: str | None = None
    health_timeout: float = 30.0
    verbose: bool = False

    @field_validator("gateway_version")
    @classmethod
    def validate_gateway_version(cls, v: str) -> str:
        # the version is spliced into an image reference
        if not _VERSION_RE.match(v):
            raise ValueError(
                f"invalid gateway version {v!r}: only alphanumerics, dots and hyphens are allowed"
            )
        return v

    @field_validator("compose_command")
    @classmethod
    def validate_compose_command(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("compose_command must be a non-empty list")
        return v

    @property
    def gateway_image(self) -> str:
        return f"{self.gateway_repository}:{self.gateway_version}-musl"
