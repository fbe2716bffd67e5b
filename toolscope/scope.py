"""
Tool scope resolution.

Three layers can decide which tools a request may see and call:

1. The static scope, configured once at server start (MCP_TOOLS).
2. The request scope, attached to one request by upstream middleware.
3. The full catalogue, when neither of the above is configured.

The first layer that is *configured* wins outright; the layers are never
merged. "Configured" is the important word here: a layer restricted to an
empty list is configured (and allows nothing), while an unrestricted layer
falls through to the next one. The two cases are separate types so that an
empty list can never be mistaken for "no restriction".

    resolve(Restricted(("a",)), Restricted(("b",)), ["a", "b"])  -> ("a",)   static wins
    resolve(UNRESTRICTED, Restricted(()), ["a", "b"])             -> ()       empty means nothing
    resolve(UNRESTRICTED, UNRESTRICTED, ["a", "b"])               -> ("a", "b")
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class Unrestricted:
    """No restriction configured at this layer; defer to the next one."""


@dataclass(frozen=True)
class Restricted:
    """An explicit, possibly empty, list of allowed tool names."""

    names: tuple[str, ...] = ()

    def __contains__(self, name: object) -> bool:
        return name in self.names


ScopeSpec = Unrestricted | Restricted

UNRESTRICTED = Unrestricted()


@dataclass(frozen=True)
class EffectiveScope:
    """
    The resolved set of tools for one request.

    Attributes:
        names: Allowed tool names, unique and in catalogue order
        source: Which layer decided: "static", "request" or "default"
        unknown: Explicitly listed names that are not in the catalogue
                 (dropped, kept here for logging only)
    """

    names: tuple[str, ...]
    source: str = "default"
    unknown: tuple[str, ...] = ()

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def __len__(self) -> int:
        return len(self.names)


def scope_from_tools(tools: Iterable[str] | None) -> ScopeSpec:
    """Convert an optional list of names (config or request state) to a ScopeSpec."""
    if tools is None:
        return UNRESTRICTED
    return Restricted(tuple(tools))


def resolve(
    static_scope: ScopeSpec,
    request_scope: ScopeSpec,
    catalogue: Iterable[str],
) -> EffectiveScope:
    """
    Compute the effective scope for one request.

    Static scope, when restricted, overrides the request scope completely,
    even when it is empty. Explicit names that the catalogue doesn't know
    are dropped without error, so a stale configuration can't take the
    server down.

    Args:
        static_scope: Server-wide scope from configuration
        request_scope: Scope attached to this request
        catalogue: Every tool name the server can expose, in order

    Returns:
        EffectiveScope with names in catalogue order
    """
    ordered = tuple(dict.fromkeys(catalogue))

    for source, layer in (("static", static_scope), ("request", request_scope)):
        if isinstance(layer, Restricted):
            allowed = set(layer.names)
            known = set(ordered)
            return EffectiveScope(
                names=tuple(name for name in ordered if name in allowed),
                source=source,
                unknown=tuple(name for name in dict.fromkeys(layer.names) if name not in known),
            )

    return EffectiveScope(names=ordered)
