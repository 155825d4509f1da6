"""Document store abstraction for the BuildWise conflict engine.

Follows the driver-interface pattern: a backend-agnostic ABC so the conflict
resolver, snapshot service and module service never touch SQL directly.

**Contract:**
- Every method returns validated domain models (``buildwise.graph.models``),
  never raw rows or dicts.  Rows that fail validation raise ``StoreFailure``.
- Every method is its own unit of work.  There is no transaction spanning two
  calls; in particular a snapshot write followed by an audit write is NOT
  atomic.
- ``create_snapshot`` with ``active=True`` deactivates the project's previous
  active snapshot in the same transaction.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from buildwise.graph.models import (
    AuditRecord,
    Edge,
    Module,
    ModuleEdit,
    ModuleStatus,
    Node,
    Snapshot,
)


@dataclass
class NewSnapshot:
    """Fields for a snapshot about to be inserted."""

    project_id: str
    version: int
    nodes: list[Node]
    edges: list[Edge]
    author: str
    modules: list[str] = field(default_factory=list)
    active: bool = True
    rollback_from: int | None = None


@dataclass
class NewModule:
    """Fields for a module about to be inserted."""

    project_id: str
    name: str
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    order: int = 0
    confidence: str | None = None
    status: ModuleStatus = ModuleStatus.proposed


@dataclass
class NewAuditRecord:
    """Fields for an audit entry about to be appended."""

    project_id: str
    action: str
    actor: str
    conflict_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


class DocumentStore(ABC):
    """Backend-agnostic persistence interface for snapshots, modules and audits.

    All methods are async; suspension points are the database round trips.
    """

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @abstractmethod
    async def find_active_snapshot(self, project_id: str) -> Snapshot | None:
        """Return the project's active snapshot, or None if none exists yet."""

    @abstractmethod
    async def create_snapshot(self, doc: NewSnapshot) -> Snapshot:
        """Insert a snapshot.

        If ``doc.active`` is set, any currently active snapshot of the project
        is deactivated in the same transaction.
        """

    @abstractmethod
    async def deactivate_snapshot(self, project_id: str) -> int:
        """Clear the active flag on the project's snapshots.

        Returns:
            Number of snapshots that were deactivated (0 or 1).
        """

    @abstractmethod
    async def latest_snapshot_version(self, project_id: str) -> int:
        """Return the highest version across all of the project's snapshots, 0 if none."""

    @abstractmethod
    async def find_snapshot_by_version(self, project_id: str, version: int) -> Snapshot | None:
        """Return a specific snapshot version, active or not."""

    @abstractmethod
    async def list_snapshots(self, project_id: str) -> list[Snapshot]:
        """Return every snapshot of the project, newest version first."""

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    @abstractmethod
    async def find_module_by_id(self, module_id: str) -> Module | None:
        """Return the module with the given id, or None."""

    @abstractmethod
    async def create_module(self, doc: NewModule) -> Module:
        """Insert a module document."""

    @abstractmethod
    async def list_modules(
        self, project_id: str, status: ModuleStatus | None = None
    ) -> list[Module]:
        """Return the project's modules sorted by ``order``, optionally filtered by status."""

    @abstractmethod
    async def update_module_status(
        self,
        module_id: str,
        status: ModuleStatus,
        approved_by: str | None = None,
    ) -> Module | None:
        """Set a module's status.  Returns the updated module, or None if absent."""

    @abstractmethod
    async def update_module_node_id(self, module_id: str, old_id: str, new_id: str) -> Module | None:
        """Rename one node inside a module document.

        Returns the updated module, or None if the module or node is absent.
        """

    @abstractmethod
    async def add_module_edit(self, module_id: str, edit: ModuleEdit) -> Module | None:
        """Append a proposed edit to a module.  Returns None if the module is absent."""

    @abstractmethod
    async def save_module_edit(
        self,
        module_id: str,
        edit: ModuleEdit,
        nodes: list[Node] | None = None,
        edges: list[Edge] | None = None,
        status: ModuleStatus | None = None,
        approved_by: str | None = None,
    ) -> Module | None:
        """Replace the stored edit with the same id, optionally with new module content.

        ``nodes``/``edges``/``status`` are left unchanged when None.  All
        changes land in one transaction.  Returns None if the module or the
        edit is absent.
        """

    @abstractmethod
    async def set_module_order(self, project_id: str, module_ids: list[str]) -> list[Module]:
        """Set ``order`` to each id's position in ``module_ids`` in one transaction.

        Ids that do not belong to the project are ignored.  Returns the
        project's modules sorted by the new order.
        """

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_audit_record(self, doc: NewAuditRecord) -> AuditRecord:
        """Append one audit entry."""

    @abstractmethod
    async def list_audit_records(self, project_id: str, limit: int = 100) -> list[AuditRecord]:
        """Return the project's audit entries, newest first."""

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the backend is reachable."""
