"""Composite conflict identifiers.

A conflict id names the module and the node or edge it concerns:

    {module_id}::node::{node_id}
    {module_id}::node::{node_id}::meta
    {module_id}::edge::{from}::{to}
    {module_id}::edge::{from}::{to}::meta

Trailing segments beyond the key (``::meta``) only keep ids unique when one
node or edge yields two conflicts; the resolver ignores them.
"""

from __future__ import annotations

from dataclasses import dataclass

from buildwise.errors import InvalidConflictId, InvalidInput

SEPARATOR = "::"
NODE = "node"
EDGE = "edge"


@dataclass(frozen=True)
class ConflictRef:
    """A parsed conflict id."""

    module_id: str
    kind: str
    rest: tuple[str, ...]

    @property
    def node_id(self) -> str:
        return self.rest[0]

    @property
    def edge_pair(self) -> tuple[str, str]:
        if len(self.rest) < 2:
            raise InvalidConflictId("edge conflict id needs both endpoints")
        return (self.rest[0], self.rest[1])


def parse_conflict_id(conflict_id: str) -> ConflictRef:
    """Split a conflict id into module id, kind and key segments.

    Raises:
        InvalidConflictId: fewer than three ``::``-separated parts.
        InvalidInput:      kind is neither ``node`` nor ``edge``.
    """
    parts = str(conflict_id).split(SEPARATOR)
    if len(parts) < 3:
        raise InvalidConflictId("invalid conflictId format")
    module_id, kind, *rest = parts
    if kind not in (NODE, EDGE):
        raise InvalidInput(f"unsupported conflict kind '{kind}'")
    return ConflictRef(module_id=module_id, kind=kind, rest=tuple(rest))


def node_conflict_id(module_id: str, node_id: str, meta: bool = False) -> str:
    parts = [module_id, NODE, node_id]
    if meta:
        parts.append("meta")
    return SEPARATOR.join(parts)


def edge_conflict_id(module_id: str, source: str, target: str, meta: bool = False) -> str:
    parts = [module_id, EDGE, source, target]
    if meta:
        parts.append("meta")
    return SEPARATOR.join(parts)
