from __future__ import annotations

"""Domain-specific exceptions for service and orchestration layers.

The application registers handlers in `main.py` that translate these into
HTTP responses with a plain `detail` message.
"""


class InvalidInputError(Exception):
    """Invalid upload (oversize, empty, wrong type, too many files) (maps to HTTP 400)."""


class NotFoundError(Exception):
    """Unknown job id or missing conversion result (maps to HTTP 404)."""


class NotReadyError(Exception):
    """Download requested before the conversion completed (maps to HTTP 400)."""


class ConflictError(Exception):
    """Job cannot be retried because its source was never stored (maps to HTTP 409)."""


class StorageError(Exception):
    """Object storage put/sign/delete failure (maps to HTTP 503 when not absorbed by a job)."""


class DispatchError(Exception):
    """Conversion worker could not be invoked (maps to HTTP 503 when not absorbed by a job)."""


class StaleUpdateError(Exception):
    """Worker callback belongs to a superseded attempt; used internally."""


class InvalidTransitionError(Exception):
    """Requested status change is not allowed from the current state; used internally."""
