"""Conflict detection and resolution between modules and the canonical snapshot.

When a module proposes a node or edge whose identity already exists in the
canonical snapshot, the detector reports the disagreeing fields and an admin
picks a resolution action per conflict:
  keep_canonical - canonical wins, audit only
  apply_module   - module definition replaces canonical (new snapshot version)
  merge_meta     - meta maps merged, module wins on key collision (new version)
  rename_new     - module node renamed out of the way (nodes only, no new version)
"""

from buildwise.conflict.detector import (
    Conflict,
    ConflictReport,
    detect_conflicts,
    detect_module_conflicts,
)
from buildwise.conflict.resolver import ResolveResult, resolve_conflict

__all__ = [
    "Conflict",
    "ConflictReport",
    "ResolveResult",
    "detect_conflicts",
    "detect_module_conflicts",
    "resolve_conflict",
]
