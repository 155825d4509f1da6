"""Persistence boundary for snapshots, modules and audit records.

Callers depend on the DocumentStore ABC; SqlDocumentStore is the SQLAlchemy
implementation returned by get_store().
"""

from buildwise.store.base import DocumentStore, NewAuditRecord, NewModule, NewSnapshot
from buildwise.store.sql import SqlDocumentStore, get_store

__all__ = [
    "DocumentStore",
    "NewAuditRecord",
    "NewModule",
    "NewSnapshot",
    "SqlDocumentStore",
    "get_store",
]
