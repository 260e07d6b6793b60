"""Runtime facade: registry run requests in, reconciled infrastructure out."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from mcp_deployer.config import Settings
from mcp_deployer.errors import TranslationError
from mcp_deployer.logging import get_logger
from mcp_deployer.reconcile.compose_runner import ComposeRunner
from mcp_deployer.reconcile.local import LocalReconciler
from mcp_deployer.state.builder import DesiredStateBuilder
from mcp_deployer.translate.base import AIRuntimeConfig, RuntimeTranslator
from mcp_deployer.translate.cluster import ClusterRuntimeConfig, ClusterTranslator
from mcp_deployer.translate.compose import ComposeTranslator, LocalRuntimeConfig
from mcp_deployer.types import AgentRunRequest, MCPServerRunRequest

SUPPORTED_RUNTIMES = ("local", "kubernetes")

RuntimeValidator = Callable[[str], None]

log = get_logger(__name__)


def validate_runtime(runtime: str, custom_validator: RuntimeValidator | None = None) -> None:
    """Raise ValueError unless *runtime* is supported or accepted by *custom_validator*."""
    if runtime in SUPPORTED_RUNTIMES:
        return
    if custom_validator is not None:
        custom_validator(runtime)
        return
    raise ValueError(
        f"unsupported runtime {runtime!r}, supported values: {', '.join(SUPPORTED_RUNTIMES)}"
    )


def select_translator(settings: Settings) -> RuntimeTranslator:
    if settings.runtime == "local":
        return ComposeTranslator(
            working_dir=str(settings.runtime_dir),
            gateway_port=settings.gateway_port,
            gateway_image=settings.gateway_image,
        )
    if settings.runtime == "kubernetes":
        return ClusterTranslator(
            default_namespace=settings.default_namespace, namespace_env=settings.namespace_env
        )
    raise ValueError(f"no translator for runtime {settings.runtime!r}")


def compose_runner(settings: Settings) -> ComposeRunner:
    return ComposeRunner(
        settings.runtime_dir,
        command=settings.compose_command,
        health_url=settings.health_url,
        health_timeout=settings.health_timeout,
    )


class AgentRegistryRuntime:
    def __init__(
        self,
        builder: DesiredStateBuilder,
        translator: RuntimeTranslator,
        runtime_dir: Path,
        reconciler: LocalReconciler | None = None,
    ) -> None:
        self.builder = builder
        self.translator = translator
        self.runtime_dir = Path(runtime_dir)
        self.reconciler = reconciler or LocalReconciler(self.runtime_dir)

    @classmethod
    def from_settings(cls, settings: Settings) -> AgentRegistryRuntime:
        return cls(
            builder=DesiredStateBuilder(
                default_namespace=settings.default_namespace, namespace_env=settings.namespace_env
            ),
            translator=select_translator(settings),
            runtime_dir=settings.runtime_dir,
            reconciler=LocalReconciler(settings.runtime_dir, compose_runner(settings)),
        )

    def reconcile_all(
        self,
        server_requests: Iterable[MCPServerRunRequest] = (),
        agent_requests: Iterable[AgentRunRequest] = (),
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> AIRuntimeConfig:
        """Resolve, translate and apply; returns the runtime config that was produced.

        Local configs are written and started. Cluster configs are returned
        untouched for an external cluster client to apply.
        """
        desired = self.builder.build(server_requests, agent_requests)
        cfg = self.translator.translate(desired)
        log.info(
            "desired state: agents=%d MCP servers=%d",
            len(desired.agents),
            len(desired.mcp_servers),
            extra={"kind": cfg.kind},
        )

        if isinstance(cfg, LocalRuntimeConfig):
            self.reconciler.apply(cfg, desired.agents, cancel=cancel, timeout=timeout)
        elif isinstance(cfg, ClusterRuntimeConfig):
            log.info(
                "cluster runtime config ready for apply: %d resources",
                len(cfg.manifests()),
                extra={"kind": cfg.kind},
            )
        else:
            raise TranslationError(f"unsupported runtime config type: {cfg!r}")
        return cfg
