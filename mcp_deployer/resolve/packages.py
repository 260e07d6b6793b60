"""Package spec resolution: pick one representation of a server and make it concrete.

Only the first alternative is ever considered: ``remotes[0]`` when remotes are
preferred (or no package exists), ``packages[0]`` otherwise.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlparse

from mcp_deployer.errors import (
    ResolutionError,
    UnsupportedRegistryTypeError,
    UnsupportedTransportError,
)
from mcp_deployer.resolve.params import resolve_arguments, resolve_environment, resolve_headers
from mcp_deployer.types import PackageAlternative, RemoteAlternative, ResolvedServer, ServerSpec

NODE_IMAGE = "node:24-alpine3.21"
UV_IMAGE = "ghcr.io/astral-sh/uv:debian"

DEFAULT_HTTP_PORT = 3000
DEFAULT_HTTP_PATH = "/mcp"

_HTTP_TRANSPORTS = {"streamable-http", "sse", "http"}


@dataclass(frozen=True)
class LaunchConfig:
    image: str
    command: str


def ecosystem_launch(
    registry_type: str, runtime_hint: str, identifier: str, args: list[str]
) -> tuple[LaunchConfig, list[str]]:
    """Return the image/command for *registry_type* and *args* with the identifier injected."""
    kind = (registry_type or "").lower()
    args = list(args)

    if kind == "npm":
        # -y keeps npx non-interactive inside a container
        if "-y" not in args:
            args.append("-y")
        args.append(identifier)
        return LaunchConfig(NODE_IMAGE, runtime_hint or "npx"), args
    if kind == "pypi":
        args.append(identifier)
        return LaunchConfig(UV_IMAGE, runtime_hint or "uvx"), args
    if kind == "oci":
        # the identifier is the image; empty command keeps the image entrypoint
        return LaunchConfig(identifier, runtime_hint), args

    raise UnsupportedRegistryTypeError(registry_type)


def _package_transport(server: str, pkg: PackageAlternative) -> tuple[str, int | None, str | None]:
    kind = (pkg.transport.type or "stdio").lower()
    if kind == "stdio":
        return "stdio", None, None
    if kind not in _HTTP_TRANSPORTS:
        raise UnsupportedTransportError(server, pkg.transport.type)

    port, path = DEFAULT_HTTP_PORT, DEFAULT_HTTP_PATH
    if pkg.transport.url:
        parsed = urlparse(pkg.transport.url)
        try:
            port = parsed.port or port
        except ValueError as exc:
            raise ResolutionError(
                f"server {server!r} has an invalid URL {pkg.transport.url!r}: {exc}"
            ) from exc
        path = parsed.path or path
    return "http", port, path


def _resolve_remote(
    spec: ServerSpec, remote: RemoteAlternative, header_values: Mapping[str, str] | None
) -> ResolvedServer:
    if not remote.url:
        raise ResolutionError(f"server {spec.name!r} remote has no URL")
    headers = resolve_headers(remote.headers, header_values, spec.name)
    return ResolvedServer(name=spec.name, kind="remote", url=remote.url, headers=headers)


def _resolve_package(
    spec: ServerSpec,
    pkg: PackageAlternative,
    env_values: Mapping[str, str] | None,
    arg_values: Mapping[str, str] | None,
) -> ResolvedServer:
    args = resolve_arguments(pkg.runtime_arguments, arg_values)
    launch, args = ecosystem_launch(pkg.registry_type, pkg.runtime_hint, pkg.identifier, args)
    args = resolve_arguments(pkg.package_arguments, arg_values, base=args)
    env = resolve_environment(pkg.environment_variables, env_values, spec.name)
    transport, port, path = _package_transport(spec.name, pkg)

    return ResolvedServer(
        name=spec.name,
        kind="command",
        image=launch.image,
        command=launch.command,
        args=args,
        env=env,
        transport=transport,
        port=port,
        path=path,
    )


def resolve_server(
    spec: ServerSpec,
    prefer_remote: bool = False,
    env_values: Mapping[str, str] | None = None,
    arg_values: Mapping[str, str] | None = None,
    header_values: Mapping[str, str] | None = None,
) -> ResolvedServer:
    if spec.remotes and (prefer_remote or not spec.packages):
        return _resolve_remote(spec, spec.remotes[0], header_values)
    if spec.packages:
        return _resolve_package(spec, spec.packages[0], env_values, arg_values)
    raise ResolutionError(f"server {spec.name!r} has no packages or remotes defined")
