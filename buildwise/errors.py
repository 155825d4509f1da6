"""Error taxonomy for the BuildWise conflict engine.

Services raise these; the conflict resolver converts them to
``ResolveResult(ok=False, message=...)`` values and the REST layer maps them to
HTTP status codes:

  InvalidInput       - 400 (malformed conflict id, missing parameter, bad kind)
  UnsupportedAction  - 400 (action not defined for the conflict kind)
  NotFound           - 404 (module, module node/edge or snapshot version absent)
  StoreFailure       - 500 (database operation raised, or a stored row is malformed)
"""

from __future__ import annotations


class BuildWiseError(Exception):
    """Base class for all domain errors.  ``str(exc)`` is the user-facing message."""


class InvalidInput(BuildWiseError):
    """Caller supplied something structurally wrong."""


class InvalidConflictId(InvalidInput):
    """Conflict id did not split into at least ``moduleId::kind::key``."""


class MissingParameter(InvalidInput):
    """A required action parameter (e.g. ``renameTo``) was not supplied."""


class NotFound(BuildWiseError):
    """Referenced entity does not exist."""


class ModuleNotFound(NotFound):
    pass


class UnsupportedAction(BuildWiseError):
    """Action string is not recognised for the given conflict kind."""


class StoreFailure(BuildWiseError):
    """Underlying document store operation failed."""
