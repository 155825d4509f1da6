"""BuildWise: architecture snapshot, module and conflict-resolution service."""

__version__ = "0.1.0"
