"""Apply a local runtime config: write the documents, then ``compose up``."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from pathlib import Path

from mcp_deployer.logging import get_logger
from mcp_deployer.reconcile import sidechannel
from mcp_deployer.reconcile.compose_runner import ComposeRunner
from mcp_deployer.state.models import Agent
from mcp_deployer.translate.compose import (
    COMPOSE_FILE,
    GATEWAY_CONFIG_DIR,
    GATEWAY_CONFIG_FILE,
    LocalRuntimeConfig,
)
from mcp_deployer.validator import validate_gateway_config

log = get_logger(__name__)


class LocalReconciler:
    """Writes the compose and gateway documents into ``runtime_dir`` and starts them.

    Both files are rewritten from scratch on every call. Callers must not
    reconcile the same directory from two places at once.
    """

    def __init__(self, runtime_dir: Path, runner: ComposeRunner | None = None) -> None:
        self.runtime_dir = Path(runtime_dir)
        self.runner = runner or ComposeRunner(self.runtime_dir)

    @property
    def compose_path(self) -> Path:
        return self.runtime_dir / COMPOSE_FILE

    @property
    def gateway_path(self) -> Path:
        return self.runtime_dir / GATEWAY_CONFIG_DIR / GATEWAY_CONFIG_FILE

    def write(self, cfg: LocalRuntimeConfig) -> tuple[Path, Path]:
        validate_gateway_config(cfg.gateway.to_document())
        self.runtime_dir.mkdir(parents=True, exist_ok=True)

        compose_yaml = cfg.compose_yaml()
        log.debug("docker compose yaml:\n%s", compose_yaml)
        self.compose_path.write_text(compose_yaml, encoding="utf-8")

        gateway_yaml = cfg.gateway_yaml()
        log.debug("agent gateway yaml:\n%s", gateway_yaml)
        self.gateway_path.parent.mkdir(parents=True, exist_ok=True)
        self.gateway_path.write_text(gateway_yaml, encoding="utf-8")

        return self.compose_path, self.gateway_path

    def apply(
        self,
        cfg: LocalRuntimeConfig,
        agents: Iterable[Agent] = (),
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> str:
        """Write the documents and per-agent server manifests, then start the project.

        The gateway document is validated before anything touches the disk.
        """
        self.write(cfg)
        sidechannel.write_all(self.runtime_dir, agents)
        return self.runner.up(cancel=cancel, timeout=timeout)
