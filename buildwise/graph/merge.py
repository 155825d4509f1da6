"""Deterministic merge of approved modules into one canonical graph.

Rules, applied to modules in ``order``:
- Nodes are deduped by id.  On collision the meta maps are unioned (later
  module wins on key collision); a ``high``-confidence module also overrides
  the node's other fields.
- Edges are deduped by (from, to); on collision the meta maps are unioned.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from buildwise.graph.models import Edge, Module, Node


@dataclass
class MergedGraph:
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    modules: list[str] = field(default_factory=list)


def build_canonical(modules: Iterable[Module]) -> MergedGraph:
    """Fold modules into a single graph; input order is preserved for new ids."""
    nodes: dict[str, Node] = {}
    edges: dict[tuple[str, str], Edge] = {}
    module_ids: list[str] = []

    for module in sorted(modules, key=lambda m: m.order):
        module_ids.append(module.id)

        for node in module.nodes:
            existing = nodes.get(node.id)
            if existing is None:
                nodes[node.id] = node.model_copy(deep=True)
                continue
            merged_meta = {**existing.meta, **node.meta}
            base = node if module.confidence == "high" else existing
            nodes[node.id] = base.model_copy(deep=True, update={"meta": merged_meta})

        for edge in module.edges:
            existing_edge = edges.get(edge.pair)
            if existing_edge is None:
                edges[edge.pair] = edge.model_copy(deep=True)
            else:
                edges[edge.pair] = existing_edge.model_copy(
                    deep=True, update={"meta": {**existing_edge.meta, **edge.meta}}
                )

    return MergedGraph(nodes=list(nodes.values()), edges=list(edges.values()), modules=module_ids)
