"""Canonical snapshot versioning, rollback and diffs."""
