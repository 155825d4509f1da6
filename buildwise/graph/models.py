"""Typed documents for architecture graphs, snapshots, modules and audits.

Every document read from the store passes through one of these models before
it reaches the conflict engine. Rows that do not validate are rejected at the
store boundary instead of being trusted as loose dicts.

Edge endpoints are serialized as ``from`` / ``to`` (the shape the dashboard
and stored documents use); in Python they are ``source`` / ``target`` because
``from`` is a keyword.
"""

from __future__ import annotations

import datetime
import enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Position(BaseModel):
    x: float
    y: float


class Node(BaseModel):
    """A single architecture component.  Identity is ``id``, never position."""

    id: str = Field(min_length=1)
    type: str
    label: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)
    position: Position | None = None

    model_config = ConfigDict(extra="forbid", from_attributes=True)


class Edge(BaseModel):
    """A directed connection between two node ids.

    Endpoints are not checked against the containing graph's node ids.
    """

    id: str | None = None
    source: str = Field(alias="from", min_length=1)
    target: str = Field(alias="to", min_length=1)
    label: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", populate_by_name=True, from_attributes=True)

    @property
    def pair(self) -> tuple[str, str]:
        return (self.source, self.target)

    @property
    def key(self) -> str:
        """Identity key: explicit id when present, else ``from::to``."""
        return self.id or f"{self.source}::{self.target}"


class ModuleStatus(str, enum.Enum):
    proposed = "proposed"
    approved = "approved"
    modified = "modified"
    rejected = "rejected"


Confidence = Literal["high", "medium", "low"]


class ModuleEditStatus(str, enum.Enum):
    open = "open"
    accepted = "accepted"
    rejected = "rejected"


class ModuleEditDiff(BaseModel):
    """Nodes and edges to fold into a module; ``None`` leaves that list alone."""

    nodes: list[Node] | None = None
    edges: list[Edge] | None = None

    model_config = ConfigDict(extra="forbid")

    @property
    def is_empty(self) -> bool:
        return self.nodes is None and self.edges is None


class ModuleEdit(BaseModel):
    """A change to a module proposed by any user, reviewed by a teacher or admin."""

    id: str
    author: str
    diff: ModuleEditDiff
    status: ModuleEditStatus = ModuleEditStatus.open
    created_at: datetime.datetime
    reviewed_by: str | None = None
    reviewed_at: datetime.datetime | None = None


class Snapshot(BaseModel):
    """An immutable version of a project's canonical architecture graph."""

    id: str
    project_id: str
    version: int = Field(ge=1)
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    modules: list[str] = Field(default_factory=list)
    active: bool = False
    author: str
    created_at: datetime.datetime
    rollback_from: int | None = None

    model_config = ConfigDict(from_attributes=True)


class Module(BaseModel):
    """A proposed sub-graph competing to be merged into the canonical snapshot."""

    id: str
    project_id: str
    name: str
    status: ModuleStatus = ModuleStatus.proposed
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    order: int = 0
    confidence: Confidence | None = None
    approved_by: str | None = None
    approved_at: datetime.datetime | None = None
    created_at: datetime.datetime
    updated_at: datetime.datetime
    proposed_edits: list[ModuleEdit] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    def find_node(self, node_id: str) -> Node | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    def find_edge(self, source: str, target: str) -> Edge | None:
        return next((e for e in self.edges if e.pair == (source, target)), None)

    def find_edit(self, edit_id: str) -> ModuleEdit | None:
        return next((e for e in self.proposed_edits if e.id == edit_id), None)


class AuditRecord(BaseModel):
    """One append-only entry in a project's audit ledger."""

    id: str
    project_id: str
    conflict_id: str | None = None
    action: str
    actor: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


def dump_nodes(nodes: list[Node]) -> list[dict[str, Any]]:
    """Serialize nodes into the JSON shape persisted in document columns."""
    return [n.model_dump(mode="json", exclude_none=True) for n in nodes]


def dump_edges(edges: list[Edge]) -> list[dict[str, Any]]:
    """Serialize edges with ``from`` / ``to`` keys for document columns."""
    return [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in edges]


def dump_module_edits(edits: list[ModuleEdit]) -> list[dict[str, Any]]:
    return [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in edits]
