"""Error taxonomy for resolution, translation and reconciliation.

Validation-class errors (everything under ``ResolutionError``,
``DuplicateServerError`` and ``TranslationError``) are raised before any file
is written or any subprocess is started.
"""

from __future__ import annotations


class DeployerError(Exception):
    pass


class ResolutionError(DeployerError):
    """A server or agent spec could not be turned into launch parameters."""


class MissingParametersError(ResolutionError):
    def __init__(self, server: str, what: str, missing: list[str]) -> None:
        self.server = server
        self.what = what
        self.missing = list(missing)
        super().__init__(f"missing required {what} for server {server!r}: {', '.join(missing)}")


class UnsupportedRegistryTypeError(ResolutionError):
    def __init__(self, registry_type: str) -> None:
        self.registry_type = registry_type
        super().__init__(f"unsupported package registry type: {registry_type}")


class UnsupportedTransportError(ResolutionError):
    def __init__(self, server: str, transport: str) -> None:
        self.server = server
        self.transport = transport
        super().__init__(f"unsupported transport type {transport!r} for server {server!r}")


class DuplicateServerError(DeployerError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"duplicate MCP server name found: {name}")


class TranslationError(DeployerError):
    """Desired state cannot be expressed in the target runtime."""


class ComposeError(DeployerError):
    """The compose tool exited non-zero; ``output`` holds stdout+stderr."""

    def __init__(self, args: list[str], returncode: int, output: str) -> None:
        self.command = list(args)
        self.returncode = returncode
        self.output = output
        detail = output.strip() or "<no output>"
        super().__init__(f"{' '.join(args)} failed with exit code {returncode}:\n{detail}")


class HealthCheckError(DeployerError):
    pass


class ReconcileCancelled(DeployerError):
    """The caller cancelled an in-flight reconciliation."""


class ReconcileTimeout(ReconcileCancelled):
    """The caller-supplied deadline passed before the compose tool finished."""
