# tests/test_modules.py
"""
Test the module lifecycle, edit proposals, bulk review, ordering and the
canonical merge engine.
"""

import pytest

from buildwise.errors import InvalidInput, ModuleNotFound, NotFound
from buildwise.graph.merge import build_canonical
from buildwise.graph.models import Edge, Module, ModuleEditStatus, ModuleStatus, Node
from buildwise.modules.service import (
    accept_module_edit,
    approve_module,
    bulk_review_modules,
    get_module,
    list_modules,
    propose_module,
    propose_module_edit,
    reject_module,
    reject_module_edit,
    reorder_modules,
)
from tests.conftest import PROJECT_ID


def _module(module_id, order, nodes=(), edges=(), confidence=None):
    """Unsaved module for pure merge tests."""
    return Module.model_validate({
        "id": module_id,
        "project_id": PROJECT_ID,
        "name": module_id,
        "nodes": list(nodes),
        "edges": list(edges),
        "order": order,
        "confidence": confidence,
        "created_at": "2026-01-01T00:00:00Z",
        "updated_at": "2026-01-01T00:00:00Z",
    })


class TestBuildCanonical:
    """Tests for the deterministic merge of approved modules."""

    def test_modules_merged_in_order(self):
        later = _module("b", 2, nodes=[Node(id="y", type="service")])
        earlier = _module("a", 1, nodes=[Node(id="x", type="service")])

        merged = build_canonical([later, earlier])

        assert merged.modules == ["a", "b"]
        assert [n.id for n in merged.nodes] == ["x", "y"]

    def test_node_meta_unioned_first_definition_kept(self):
        first = _module("a", 1, nodes=[Node(id="db", type="database", meta={"dbType": "pg", "size": "s"})])
        second = _module("b", 2, nodes=[Node(id="db", type="cache", meta={"dbType": "redis"})])

        merged = build_canonical([first, second])

        assert len(merged.nodes) == 1
        assert merged.nodes[0].type == "database"
        assert merged.nodes[0].meta == {"dbType": "redis", "size": "s"}

    def test_high_confidence_overrides_fields(self):
        first = _module("a", 1, nodes=[Node(id="db", type="database", label="DB", meta={"size": "s"})])
        second = _module(
            "b", 2, nodes=[Node(id="db", type="cache", label="Cache")], confidence="high"
        )

        merged = build_canonical([first, second])

        assert merged.nodes[0].type == "cache"
        assert merged.nodes[0].label == "Cache"
        assert merged.nodes[0].meta == {"size": "s"}

    def test_edges_deduped_by_endpoints(self):
        first = _module("a", 1, edges=[Edge(source="x", target="y", meta={"protocol": "http"})])
        second = _module("b", 2, edges=[Edge(source="x", target="y", meta={"auth": "token"})])

        merged = build_canonical([first, second])

        assert len(merged.edges) == 1
        assert merged.edges[0].meta == {"protocol": "http", "auth": "token"}

    def test_no_modules(self):
        merged = build_canonical([])

        assert merged.nodes == [] and merged.edges == [] and merged.modules == []


class TestLifecycle:
    """Tests for propose / approve / reject."""

    async def test_propose_defaults(self, store):
        module = await propose_module(store, PROJECT_ID, "auth", nodes=[Node(id="auth", type="service")])

        assert module.status == ModuleStatus.proposed
        assert module.approved_by is None
        assert (await get_module(store, PROJECT_ID, module.id)).name == "auth"

    async def test_propose_rejects_duplicate_node_ids(self, store):
        with pytest.raises(InvalidInput):
            await propose_module(
                store,
                PROJECT_ID,
                "dup",
                nodes=[Node(id="a", type="service"), Node(id="a", type="database")],
            )

    async def test_list_sorted_by_order_and_filtered(self, store):
        second = await propose_module(store, PROJECT_ID, "second", order=2)
        first = await propose_module(store, PROJECT_ID, "first", order=1)
        await reject_module(store, PROJECT_ID, second.id, "admin-1")

        assert [m.id for m in await list_modules(store, PROJECT_ID)] == [first.id, second.id]
        rejected = await list_modules(store, PROJECT_ID, status=ModuleStatus.rejected)
        assert [m.id for m in rejected] == [second.id]

    async def test_approve_rebuilds_canonical(self, store):
        a = await propose_module(
            store, PROJECT_ID, "a", nodes=[Node(id="api", type="service")], order=1
        )
        b = await propose_module(
            store,
            PROJECT_ID,
            "b",
            nodes=[Node(id="db", type="database")],
            edges=[Edge(source="api", target="db")],
            order=2,
        )

        _, first = await approve_module(store, PROJECT_ID, a.id, "teacher-1")
        module, second = await approve_module(store, PROJECT_ID, b.id, "teacher-1")

        assert module.status == ModuleStatus.approved
        assert module.approved_by == "teacher-1"
        assert module.approved_at is not None
        assert first.version == 1
        assert second.version == 2
        assert second.modules == [a.id, b.id]
        assert [n.id for n in second.nodes] == ["api", "db"]
        assert [e.pair for e in second.edges] == [("api", "db")]

        audits = await store.list_audit_records(PROJECT_ID)
        assert [r.action for r in audits] == ["module_approved", "module_approved"]

    async def test_rejected_module_not_merged(self, store):
        keep = await propose_module(store, PROJECT_ID, "keep", nodes=[Node(id="k", type="service")])
        drop = await propose_module(store, PROJECT_ID, "drop", nodes=[Node(id="d", type="service")])

        rejected = await reject_module(store, PROJECT_ID, drop.id, "admin-1", reason="out of scope")
        _, snapshot = await approve_module(store, PROJECT_ID, keep.id, "admin-1")

        assert rejected.status == ModuleStatus.rejected
        assert [n.id for n in snapshot.nodes] == ["k"]
        audits = await store.list_audit_records(PROJECT_ID)
        reject_audit = next(a for a in audits if a.action == "module_rejected")
        assert reject_audit.details == {"moduleId": drop.id, "reason": "out of scope"}

    async def test_other_project_module_is_not_found(self, store):
        module = await propose_module(store, PROJECT_ID, "mine")

        with pytest.raises(ModuleNotFound):
            await approve_module(store, "proj-2", module.id, "admin-1")
        with pytest.raises(ModuleNotFound):
            await get_module(store, "proj-2", module.id)


class TestModuleEdits:
    """Tests for proposing and reviewing edits to a module."""

    async def test_propose_edit_keeps_module_graph(self, store):
        module = await propose_module(store, PROJECT_ID, "core", nodes=[Node(id="api", type="service")])

        updated, edit = await propose_module_edit(
            store, PROJECT_ID, module.id, "student-1", nodes=[Node(id="api", type="gateway")]
        )

        assert edit.status == ModuleEditStatus.open
        assert edit.author == "student-1"
        assert updated.nodes == module.nodes
        assert updated.status == ModuleStatus.proposed
        assert [e.id for e in updated.proposed_edits] == [edit.id]

        audits = await store.list_audit_records(PROJECT_ID)
        assert audits[0].action == "propose_module_edit"
        assert audits[0].details["editId"] == edit.id
        assert audits[0].details["diff"] == {"nodes": [{"id": "api", "type": "gateway", "label": "", "meta": {}}]}

    async def test_propose_edit_requires_diff(self, store):
        module = await propose_module(store, PROJECT_ID, "core")

        with pytest.raises(InvalidInput, match="diff required"):
            await propose_module_edit(store, PROJECT_ID, module.id, "student-1")

    async def test_accept_edit_folds_diff_and_marks_modified(self, store):
        module = await propose_module(
            store,
            PROJECT_ID,
            "core",
            nodes=[Node(id="api", type="service"), Node(id="db", type="database")],
            edges=[Edge(source="api", target="db", meta={"protocol": "tcp"})],
        )
        _, edit = await propose_module_edit(
            store,
            PROJECT_ID,
            module.id,
            "student-1",
            nodes=[Node(id="db", type="cache"), Node(id="queue", type="queue")],
            edges=[
                Edge(source="api", target="db", meta={"protocol": "http"}),
                Edge(source="api", target="queue"),
            ],
        )

        updated, accepted = await accept_module_edit(store, PROJECT_ID, module.id, edit.id, "teacher-1")

        assert updated.status == ModuleStatus.modified
        assert updated.approved_by == "teacher-1"
        assert updated.approved_at is not None
        assert [(n.id, n.type) for n in updated.nodes] == [
            ("api", "service"), ("db", "cache"), ("queue", "queue")
        ]
        assert [(e.pair, e.meta) for e in updated.edges] == [
            (("api", "db"), {"protocol": "http"}),
            (("api", "queue"), {}),
        ]
        assert accepted.status == ModuleEditStatus.accepted
        assert accepted.reviewed_by == "teacher-1"
        assert updated.find_edit(edit.id).status == ModuleEditStatus.accepted

        actions = {a.action for a in await store.list_audit_records(PROJECT_ID)}
        assert actions == {"propose_module_edit", "accept_proposed_edit"}

    async def test_edges_with_distinct_labels_are_separate(self, store):
        module = await propose_module(
            store, PROJECT_ID, "core", edges=[Edge(source="api", target="db", label="read")]
        )
        _, edit = await propose_module_edit(
            store, PROJECT_ID, module.id, "student-1",
            edges=[Edge(source="api", target="db", label="write")],
        )

        updated, _ = await accept_module_edit(store, PROJECT_ID, module.id, edit.id, "teacher-1")

        assert [e.label for e in updated.edges] == ["read", "write"]

    async def test_reject_edit_leaves_module_unchanged(self, store):
        module = await propose_module(store, PROJECT_ID, "core", nodes=[Node(id="api", type="service")])
        _, edit = await propose_module_edit(
            store, PROJECT_ID, module.id, "student-1", nodes=[Node(id="api", type="gateway")]
        )

        updated, rejected = await reject_module_edit(store, PROJECT_ID, module.id, edit.id, "admin-1")

        assert rejected.status == ModuleEditStatus.rejected
        assert updated.status == ModuleStatus.proposed
        assert updated.nodes == module.nodes
        audits = await store.list_audit_records(PROJECT_ID)
        assert any(a.action == "reject_proposed_edit" for a in audits)

    async def test_edit_reviewed_only_once(self, store):
        module = await propose_module(store, PROJECT_ID, "core")
        _, edit = await propose_module_edit(
            store, PROJECT_ID, module.id, "student-1", nodes=[Node(id="api", type="service")]
        )
        await accept_module_edit(store, PROJECT_ID, module.id, edit.id, "teacher-1")

        with pytest.raises(InvalidInput):
            await reject_module_edit(store, PROJECT_ID, module.id, edit.id, "teacher-1")

    async def test_unknown_edit(self, store):
        module = await propose_module(store, PROJECT_ID, "core")

        with pytest.raises(NotFound, match="edit not found"):
            await accept_module_edit(store, PROJECT_ID, module.id, "missing", "teacher-1")

    async def test_modified_module_left_out_of_rebuild(self, store):
        kept = await propose_module(store, PROJECT_ID, "kept", nodes=[Node(id="k", type="service")])
        edited = await propose_module(store, PROJECT_ID, "edited", nodes=[Node(id="e", type="service")])
        await approve_module(store, PROJECT_ID, edited.id, "teacher-1")
        _, edit = await propose_module_edit(
            store, PROJECT_ID, edited.id, "student-1", nodes=[Node(id="e2", type="service")]
        )
        await accept_module_edit(store, PROJECT_ID, edited.id, edit.id, "teacher-1")

        _, snapshot = await approve_module(store, PROJECT_ID, kept.id, "teacher-1")

        assert [n.id for n in snapshot.nodes] == ["k"]


class TestBulkReviewAndOrder:
    """Tests for bulk approve / reject and reordering."""

    async def test_bulk_approve_publishes_one_snapshot(self, store):
        a = await propose_module(store, PROJECT_ID, "a", nodes=[Node(id="api", type="service")], order=1)
        b = await propose_module(store, PROJECT_ID, "b", nodes=[Node(id="db", type="database")], order=2)

        updated, snapshot = await bulk_review_modules(
            store, PROJECT_ID, [a.id, b.id, "missing"], "approve", "teacher-1", note="sprint 1"
        )

        assert {m.id for m in updated} == {a.id, b.id}
        assert all(m.status == ModuleStatus.approved for m in updated)
        assert snapshot.version == 1
        assert snapshot.modules == [a.id, b.id]
        assert await store.latest_snapshot_version(PROJECT_ID) == 1

        audits = await store.list_audit_records(PROJECT_ID)
        assert [r.action for r in audits] == ["bulk_approve_modules"]
        assert audits[0].details == {
            "moduleIds": [a.id, b.id, "missing"],
            "note": "sprint 1",
            "updatedCount": 2,
            "version": 1,
        }

    async def test_bulk_reject_has_no_snapshot(self, store):
        a = await propose_module(store, PROJECT_ID, "a")

        updated, snapshot = await bulk_review_modules(store, PROJECT_ID, [a.id], "reject", "admin-1")

        assert [m.status for m in updated] == [ModuleStatus.rejected]
        assert snapshot is None
        assert await store.latest_snapshot_version(PROJECT_ID) == 0

    async def test_bulk_skips_other_project(self, store):
        foreign = await propose_module(store, "proj-2", "foreign")

        updated, snapshot = await bulk_review_modules(
            store, PROJECT_ID, [foreign.id], "approve", "admin-1"
        )

        assert updated == []
        assert snapshot is None
        assert (await store.find_module_by_id(foreign.id)).status == ModuleStatus.proposed

    @pytest.mark.parametrize(
        "module_ids, action, message",
        [
            ([], "approve", "moduleIds required"),
            (["x"], "archive", "invalid action"),
        ],
    )
    async def test_bulk_validation(self, store, module_ids, action, message):
        with pytest.raises(InvalidInput, match=message):
            await bulk_review_modules(store, PROJECT_ID, module_ids, action, "admin-1")

    async def test_reorder_sets_positions(self, store):
        a = await propose_module(store, PROJECT_ID, "a", order=0)
        b = await propose_module(store, PROJECT_ID, "b", order=1)
        c = await propose_module(store, PROJECT_ID, "c", order=2)

        modules = await reorder_modules(store, PROJECT_ID, [c.id, a.id, "missing", b.id], "teacher-1")

        assert [(m.id, m.order) for m in modules] == [(c.id, 0), (a.id, 1), (b.id, 3)]
        audits = await store.list_audit_records(PROJECT_ID)
        assert audits[0].action == "modules_reordered"

    async def test_reorder_requires_ids(self, store):
        with pytest.raises(InvalidInput, match="Invalid order array"):
            await reorder_modules(store, PROJECT_ID, [], "teacher-1")

    async def test_reorder_changes_merge_precedence(self, store):
        first = await propose_module(
            store, PROJECT_ID, "first", nodes=[Node(id="db", type="database")], order=0
        )
        second = await propose_module(
            store, PROJECT_ID, "second", nodes=[Node(id="db", type="cache")], order=1
        )
        await reorder_modules(store, PROJECT_ID, [second.id, first.id], "teacher-1")

        _, snapshot = await bulk_review_modules(
            store, PROJECT_ID, [first.id, second.id], "approve", "teacher-1"
        )

        assert snapshot.modules == [second.id, first.id]
        assert snapshot.nodes[0].type == "cache"
