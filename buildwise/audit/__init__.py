from buildwise.audit.log import append_audit, list_audits

__all__ = ["append_audit", "list_audits"]
