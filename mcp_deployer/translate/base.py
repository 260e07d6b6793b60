"""Runtime translator contract and the runtime config sum type."""

from __future__ import annotations

from typing import Annotated, Protocol

from pydantic import Field, TypeAdapter

from mcp_deployer.state.models import DesiredState
from mcp_deployer.translate.cluster import ClusterRuntimeConfig
from mcp_deployer.translate.compose import LocalRuntimeConfig

AIRuntimeConfig = Annotated[LocalRuntimeConfig | ClusterRuntimeConfig, Field(discriminator="kind")]

runtime_config_adapter: TypeAdapter[AIRuntimeConfig] = TypeAdapter(AIRuntimeConfig)


class RuntimeTranslator(Protocol):
    def translate(self, desired: DesiredState) -> AIRuntimeConfig: ...
