# tests/test_resolver.py
"""
Test single-conflict resolution.

Each action is checked for its effect on the active snapshot, the module and
the audit ledger.  Validation failures must come back as ok=False values and
leave no audit entry behind.
"""

import pytest

from buildwise.conflict.detector import NODE_TYPE, detect_conflicts, detect_module_conflicts
from buildwise.conflict.resolver import resolve_conflict
from buildwise.errors import StoreFailure
from buildwise.graph.models import Edge, Node
from buildwise.modules.service import propose_module
from buildwise.snapshots.service import initialize_project
from tests.conftest import PROJECT_ID


async def _resolve(store, conflict_id, action, params=None, actor="admin-1", project_id=PROJECT_ID):
    return await resolve_conflict(
        store,
        project_id=project_id,
        conflict_id=conflict_id,
        action=action,
        params=params,
        actor=actor,
    )


async def _audit_count(store):
    return len(await store.list_audit_records(PROJECT_ID))


class TestNodeActions:
    """Tests for the four node actions."""

    async def test_keep_canonical_leaves_snapshot_unchanged(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::node::db", "keep_canonical")

        assert result.ok is True
        assert result.snapshot.version == seeded_project.version
        assert result.audit.action == "keep_canonical"
        assert result.audit.details == {"note": "kept canonical"}

        active = await store.find_active_snapshot(PROJECT_ID)
        assert active.version == 1
        assert active.nodes == seeded_project.nodes
        assert await _audit_count(store) == 1

    async def test_keep_canonical_twice_is_idempotent(self, store, seeded_project, conflicting_module):
        conflict_id = f"{conflicting_module.id}::node::db"

        first = await _resolve(store, conflict_id, "keep_canonical")
        second = await _resolve(store, conflict_id, "keep_canonical")

        assert first.ok and second.ok
        assert first.audit.id != second.audit.id
        active = await store.find_active_snapshot(PROJECT_ID)
        assert active.version == 1
        assert active.nodes == seeded_project.nodes
        assert await _audit_count(store) == 2

    async def test_apply_module_replaces_node(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::node::db", "apply_module")

        assert result.ok is True
        assert result.snapshot.version == seeded_project.version + 1
        assert result.snapshot.active is True

        db = next(n for n in result.snapshot.nodes if n.id == "db")
        assert db == conflicting_module.find_node("db")
        # Full replacement: keys only the canonical node had are gone
        assert "size" not in db.meta
        assert result.audit.details["version"] == 2
        assert result.audit.details["previous_version"] == 1

    async def test_apply_module_appends_missing_node(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::node::worker", "apply_module")

        assert result.ok is True
        assert [n.id for n in result.snapshot.nodes] == ["api", "db", "worker"]

    async def test_merge_meta_unions_with_module_winning(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::node::db::meta", "merge_meta")

        assert result.ok is True
        assert result.snapshot.version == 2
        db = next(n for n in result.snapshot.nodes if n.id == "db")
        assert db.meta == {"dbType": "redis", "size": "small", "ttl": 60}
        # Only meta is merged; type stays canonical
        assert db.type == "database"

    async def test_merge_meta_appends_missing_node(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::node::worker", "merge_meta")

        assert result.ok is True
        assert any(n.id == "worker" for n in result.snapshot.nodes)

    async def test_rename_new_renames_module_node_only(self, store, seeded_project, conflicting_module):
        result = await _resolve(
            store, f"{conflicting_module.id}::node::db", "rename_new", {"renameTo": "db-cache"}
        )

        assert result.ok is True
        assert result.snapshot.version == 1
        assert result.audit.details["renameTo"] == "db-cache"

        module = await store.find_module_by_id(conflicting_module.id)
        assert module.find_node("db") is None
        assert module.find_node("db-cache").type == "cache"
        active = await store.find_active_snapshot(PROJECT_ID)
        assert active.version == 1
        assert active.nodes == seeded_project.nodes

    async def test_rename_new_accepts_snake_case_param(self, store, seeded_project, conflicting_module):
        result = await _resolve(
            store, f"{conflicting_module.id}::node::db", "rename_new", {"rename_to": "db2"}
        )

        assert result.ok is True

    async def test_rename_new_without_target(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::node::db", "rename_new")

        assert result.ok is False
        assert result.message == "renameTo required"
        assert await _audit_count(store) == 0
        assert (await store.latest_snapshot_version(PROJECT_ID)) == 1

    async def test_rename_new_onto_existing_module_node(self, store, seeded_project, conflicting_module):
        result = await _resolve(
            store, f"{conflicting_module.id}::node::db", "rename_new", {"renameTo": "worker"}
        )

        assert result.ok is False
        assert await _audit_count(store) == 0

    async def test_unsupported_node_action(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::node::db", "delete")

        assert result.ok is False
        assert result.message == "unsupported node action"
        assert await _audit_count(store) == 0


class TestEdgeActions:
    """Tests for the edge action set."""

    async def test_apply_module_keeps_existing_edge(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::edge::api::db", "apply_module")

        assert result.ok is True
        assert result.snapshot.version == 2
        assert len(result.snapshot.edges) == 1
        assert result.snapshot.edges[0].meta == {"protocol": "tcp", "auth": "password"}
        assert result.audit.action == "apply_module"
        assert result.audit.details["target"] == "api->db"
        assert result.audit.details["version"] == 2
        assert await _audit_count(store) == 1

    async def test_merge_meta_targets_edge_matched_by_id(self, store):
        await initialize_project(
            store,
            PROJECT_ID,
            "admin-1",
            edges=[Edge(id="e1", source="a", target="b", meta={"protocol": "tcp"})],
        )
        module = await propose_module(
            store,
            PROJECT_ID,
            "rewire",
            edges=[Edge(id="e1", source="a", target="c", meta={"protocol": "http"})],
        )
        report = await detect_module_conflicts(store, PROJECT_ID, module.id)
        assert [c.id for c in report.conflicts] == [f"{module.id}::edge::a::c"]

        result = await _resolve(store, report.conflicts[0].id, "merge_meta")

        assert result.ok is True
        matching = [e for e in result.snapshot.edges if e.id == "e1"]
        assert len(matching) == 1
        assert matching[0].pair == ("a", "b")
        assert matching[0].meta == {"protocol": "http"}

    async def test_apply_module_does_not_duplicate_edge_id(self, store):
        await initialize_project(
            store,
            PROJECT_ID,
            "admin-1",
            edges=[Edge(id="e1", source="a", target="b", meta={"protocol": "tcp"})],
        )
        module = await propose_module(
            store,
            PROJECT_ID,
            "rewire",
            edges=[Edge(id="e1", source="a", target="c", meta={"protocol": "http"})],
        )

        result = await _resolve(store, f"{module.id}::edge::a::c", "apply_module")

        assert result.ok is True
        assert result.snapshot.version == 2
        assert [(e.id, e.pair) for e in result.snapshot.edges] == [("e1", ("a", "b"))]

    async def test_merge_meta_on_edge(self, store, seeded_project):
        module = await propose_module(
            store,
            PROJECT_ID,
            "edge-tweak",
            edges=[Edge(source="api", target="db", meta={"protocol": "http", "timeout": 5})],
        )

        result = await _resolve(store, f"{module.id}::edge::api::db", "merge_meta")

        assert result.ok is True
        assert result.snapshot.edges[0].meta == {"protocol": "http", "auth": "password", "timeout": 5}

    async def test_apply_module_appends_missing_edge(self, store, seeded_project):
        module = await propose_module(
            store, PROJECT_ID, "queue", edges=[Edge(source="api", target="queue")]
        )

        result = await _resolve(store, f"{module.id}::edge::api::queue", "apply_module")

        assert result.ok is True
        assert [e.pair for e in result.snapshot.edges] == [("api", "db"), ("api", "queue")]

    async def test_keep_canonical_on_edge(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::edge::api::db::meta", "keep_canonical")

        assert result.ok is True
        assert result.snapshot.version == 1

    async def test_rename_new_not_supported_for_edges(self, store, seeded_project, conflicting_module):
        result = await _resolve(
            store, f"{conflicting_module.id}::edge::api::db", "rename_new", {"renameTo": "x"}
        )

        assert result.ok is False
        assert result.message == "unsupported edge action"
        assert await _audit_count(store) == 0

    async def test_missing_module_edge(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::edge::api::nowhere", "apply_module")

        assert result.ok is False
        assert result.message == "module edge not found"


class TestValidation:
    """Failures are returned as values and never audited."""

    @pytest.mark.parametrize(
        "conflict_id, action, message",
        [
            ("", "keep_canonical", "conflictId & action required"),
            ("m::node::x", "", "conflictId & action required"),
            ("m::node", "keep_canonical", "invalid conflictId format"),
        ],
    )
    async def test_bad_input(self, store, seeded_project, conflict_id, action, message):
        result = await _resolve(store, conflict_id, action)

        assert result.ok is False
        assert result.message == message
        assert await _audit_count(store) == 0

    async def test_unknown_module(self, store, seeded_project):
        result = await _resolve(store, "nope::node::db", "apply_module")

        assert result.ok is False
        assert result.message == "module not found"

    async def test_module_in_other_project(self, store, conflicting_module):
        result = await _resolve(
            store, f"{conflicting_module.id}::node::db", "apply_module", project_id="other"
        )

        assert result.ok is False
        assert result.message == "module not found"

    async def test_missing_module_node(self, store, seeded_project, conflicting_module):
        result = await _resolve(store, f"{conflicting_module.id}::node::ghost", "apply_module")

        assert result.ok is False
        assert result.message == "module node not found"

    async def test_store_failure_is_returned(self, store, seeded_project, conflicting_module, monkeypatch):
        async def boom(project_id):
            raise StoreFailure("find_active_snapshot failed: OperationalError")

        monkeypatch.setattr(store, "find_active_snapshot", boom)

        result = await _resolve(store, f"{conflicting_module.id}::node::db", "apply_module")

        assert result.ok is False
        assert "find_active_snapshot failed" in result.message

    async def test_snapshot_kept_when_audit_write_fails(self, store, seeded_project, conflicting_module, monkeypatch):
        async def boom(doc):
            raise StoreFailure("create_audit_record failed: OperationalError")

        monkeypatch.setattr(store, "create_audit_record", boom)

        result = await _resolve(store, f"{conflicting_module.id}::node::db", "apply_module")

        assert result.ok is False
        assert await store.latest_snapshot_version(PROJECT_ID) == 2


class TestEndToEnd:
    """Detect-then-resolve scenarios on a fresh project."""

    @pytest.fixture
    async def db_project(self, store):
        await initialize_project(
            store, PROJECT_ID, "admin-1", nodes=[Node(id="db1", type="database")]
        )
        module = await propose_module(store, PROJECT_ID, "cache", nodes=[Node(id="db1", type="cache")])
        return module

    async def test_apply_module_scenario(self, store, db_project):
        report = await detect_module_conflicts(store, PROJECT_ID, db_project.id)
        assert [c.kind for c in report.conflicts] == [NODE_TYPE]

        result = await _resolve(store, report.conflicts[0].id, "apply_module")

        assert result.ok is True
        assert result.snapshot.version == 2
        assert result.snapshot.nodes[0].type == "cache"
        audits = await store.list_audit_records(PROJECT_ID)
        assert [a.action for a in audits] == ["apply_module"]

    async def test_keep_canonical_scenario(self, store, db_project):
        report = await detect_module_conflicts(store, PROJECT_ID, db_project.id)

        result = await _resolve(store, report.conflicts[0].id, "keep_canonical")

        assert result.ok is True
        active = await store.find_active_snapshot(PROJECT_ID)
        assert active.version == 1
        assert active.nodes[0].type == "database"

    async def test_rename_scenario(self, store):
        await initialize_project(store, PROJECT_ID, "admin-1", nodes=[Node(id="db1", type="database")])
        module = await propose_module(store, PROJECT_ID, "svc", nodes=[Node(id="temp1", type="service")])

        result = await _resolve(store, f"{module.id}::node::temp1", "rename_new", {"renameTo": "svc1"})

        assert result.ok is True
        updated = await store.find_module_by_id(module.id)
        assert [n.id for n in updated.nodes] == ["svc1"]
        assert await store.latest_snapshot_version(PROJECT_ID) == 1

    async def test_resolve_without_any_snapshot(self, store):
        module = await propose_module(store, PROJECT_ID, "first", nodes=[Node(id="a", type="service")])

        result = await _resolve(store, f"{module.id}::node::a", "apply_module")

        assert result.ok is True
        assert result.snapshot.version == 1
        assert [n.id for n in result.snapshot.nodes] == ["a"]

    def test_detector_matches_resolution_target(self):
        report = detect_conflicts(
            [{"id": "db1", "type": "database"}], [{"id": "db1", "type": "cache"}], module_id="m"
        )

        assert report.conflicts[0].id == "m::node::db1"
