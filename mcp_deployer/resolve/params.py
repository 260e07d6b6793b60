"""Parameter resolution: turn declared arguments, env vars and headers into values.

Every lookup follows the same precedence: caller override (when the key is
present, even if empty), then the declared static value, then the declared
default, then empty.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from mcp_deployer.errors import MissingParametersError
from mcp_deployer.types import Argument, KeyValueSpec


def _pick(name: str, value: str, default: str, overrides: Mapping[str, str] | None) -> str:
    if overrides is not None and name in overrides:
        return overrides[name]
    if value:
        return value
    return default or ""


def resolve_arguments(
    arguments: Iterable[Argument],
    overrides: Mapping[str, str] | None = None,
    base: list[str] | None = None,
) -> list[str]:
    """Append resolved *arguments* to a copy of *base*.

    Positional arguments come first, in declaration order, and are skipped
    when empty. Named arguments always emit their name (so bare flags such as
    ``--rm`` work) followed by the value when it is non-empty.
    """
    arguments = list(arguments)
    out = list(base or [])

    for arg in arguments:
        if arg.type == "positional":
            value = _pick(arg.name, arg.value, arg.default, overrides)
            if value:
                out.append(value)

    for arg in arguments:
        if arg.type == "named":
            out.append(arg.name)
            value = _pick(arg.name, arg.value, arg.default, overrides)
            if value:
                out.append(value)

    return out


def resolve_key_values(
    specs: Iterable[KeyValueSpec],
    overrides: Mapping[str, str] | None,
    server_name: str,
    what: str = "environment variables",
) -> dict[str, str]:
    specs = list(specs)
    overrides = overrides or {}
    result: dict[str, str] = {}
    missing: list[str] = []

    for spec in specs:
        value = _pick(spec.name, spec.value, spec.default, overrides)
        if spec.is_required and not value:
            missing.append(spec.name)
        if value:
            result[spec.name] = value

    if missing:
        raise MissingParametersError(server_name, what, missing)

    # overrides may introduce variables the spec never declared
    declared = {spec.name for spec in specs}
    for key, value in overrides.items():
        if key not in declared:
            result[key] = value

    return result


def resolve_environment(
    specs: Iterable[KeyValueSpec], overrides: Mapping[str, str] | None, server_name: str
) -> dict[str, str]:
    return resolve_key_values(specs, overrides, server_name, "environment variables")


def resolve_headers(
    specs: Iterable[KeyValueSpec], overrides: Mapping[str, str] | None, server_name: str
) -> dict[str, str]:
    return resolve_key_values(specs, overrides, server_name, "headers")
