"""Drive the external compose tool as an explicit state machine.

    idle -> applying -> waiting_healthy -> ready
                  \\             \\-> failed | cancelled
                   \\-> failed | cancelled

Every ``up`` recreates all services (``--force-recreate``); nothing is diffed
against running containers. Cancellation is a ``threading.Event`` checked
while the subprocess runs; setting it terminates the process.
"""

from __future__ import annotations

import subprocess
import threading
import time
from collections.abc import Callable, Sequence
from enum import Enum
from pathlib import Path

import httpx

from mcp_deployer.errors import (
    ComposeError,
    DeployerError,
    HealthCheckError,
    ReconcileCancelled,
    ReconcileTimeout,
)
from mcp_deployer.logging import get_logger

UP_ARGS = ["up", "-d", "--remove-orphans", "--force-recreate"]

log = get_logger(__name__)


class ComposeState(str, Enum):
    IDLE = "idle"
    APPLYING = "applying"
    WAITING_HEALTHY = "waiting_healthy"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"


_RESTART = {ComposeState.IDLE, ComposeState.APPLYING}

TRANSITIONS: dict[ComposeState, set[ComposeState]] = {
    ComposeState.IDLE: {ComposeState.APPLYING},
    ComposeState.APPLYING: {
        ComposeState.WAITING_HEALTHY,
        ComposeState.FAILED,
        ComposeState.CANCELLED,
    },
    ComposeState.WAITING_HEALTHY: {
        ComposeState.READY,
        ComposeState.FAILED,
        ComposeState.CANCELLED,
    },
    ComposeState.READY: _RESTART,
    ComposeState.FAILED: _RESTART,
    ComposeState.CANCELLED: _RESTART,
}


def http_probe(url: str) -> bool:
    """True once anything answers on *url* without a server error."""
    try:
        r = httpx.get(url, timeout=2)
    except httpx.HTTPError:
        return False
    return r.status_code < 500


class ComposeRunner:
    def __init__(
        self,
        workdir: Path,
        command: Sequence[str] = ("docker", "compose"),
        health_url: str | None = None,
        health_timeout: float = 30.0,
        poll_interval: float = 0.25,
        probe: Callable[[str], bool] = http_probe,
    ) -> None:
        self.workdir = Path(workdir)
        self.command = list(command)
        self.health_url = health_url
        self.health_timeout = health_timeout
        self.poll_interval = poll_interval
        self.probe = probe
        self.state = ComposeState.IDLE
        self.history: list[ComposeState] = [ComposeState.IDLE]

    # -- state machine -----------------------------------------------------

    def _transition(self, new: ComposeState) -> None:
        if new not in TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal compose state transition: {self.state.value} -> {new.value}")
        log.debug("compose %s -> %s", self.state.value, new.value, extra={"state": new.value})
        self.state = new
        self.history.append(new)

    # -- subprocess --------------------------------------------------------

    def _stop(self, proc: subprocess.Popen) -> None:
        proc.terminate()
        try:
            proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()

    def run(
        self,
        args: Sequence[str],
        cancel: threading.Event | None = None,
        deadline: float | None = None,
    ) -> str:
        """Run ``<command> <args>`` in the working directory and return its combined output."""
        cmd = [*self.command, *args]
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=self.workdir,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as exc:
            raise ComposeError(cmd, 127, str(exc)) from exc

        while True:
            try:
                # retrying communicate() after a timeout keeps buffered output
                output, _ = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    self._stop(proc)
                    raise ReconcileCancelled(f"{' '.join(cmd)} cancelled")
                if deadline is not None and time.monotonic() >= deadline:
                    self._stop(proc)
                    raise ReconcileTimeout(f"{' '.join(cmd)} exceeded its deadline")

        output = output or ""
        if proc.returncode != 0:
            raise ComposeError(cmd, proc.returncode, output)
        return output

    def _wait_healthy(self, cancel: threading.Event | None, deadline: float | None) -> None:
        if not self.health_url:
            return
        give_up = time.monotonic() + self.health_timeout
        if deadline is not None and deadline < give_up:
            give_up = deadline

        while True:
            if cancel is not None and cancel.is_set():
                raise ReconcileCancelled("cancelled while waiting for the gateway")
            if self.probe(self.health_url):
                return
            if time.monotonic() >= give_up:
                if deadline is not None and give_up == deadline:
                    raise ReconcileTimeout("deadline passed while waiting for the gateway")
                raise HealthCheckError(
                    f"gateway at {self.health_url} not healthy after {self.health_timeout}s"
                )
            if cancel is not None:
                cancel.wait(self.poll_interval)
            else:
                time.sleep(self.poll_interval)

    # -- public operations ---------------------------------------------------

    def up(self, cancel: threading.Event | None = None, timeout: float | None = None) -> str:
        deadline = time.monotonic() + timeout if timeout else None
        self._transition(ComposeState.APPLYING)
        try:
            output = self.run(UP_ARGS, cancel, deadline)
            self._transition(ComposeState.WAITING_HEALTHY)
            self._wait_healthy(cancel, deadline)
        except ReconcileCancelled:
            self._transition(ComposeState.CANCELLED)
            raise
        except DeployerError:
            self._transition(ComposeState.FAILED)
            raise
        self._transition(ComposeState.READY)
        log.info("docker containers started", extra={"runtime_dir": str(self.workdir)})
        return output

    def down(self, cancel: threading.Event | None = None, timeout: float | None = None) -> str:
        deadline = time.monotonic() + timeout if timeout else None
        output = self.run(["down", "--remove-orphans"], cancel, deadline)
        if self.state != ComposeState.IDLE:
            self._transition(ComposeState.IDLE)
        return output

    def logs(self, services: Sequence[str] = (), tail: int | None = None) -> str:
        args = ["logs", "--no-color"]
        if tail is not None:
            args += ["--tail", str(tail)]
        return self.run([*args, *services])

    def ps(self) -> str:
        return self.run(["ps"])
