"""Domain errors raised by drillbook services."""
from drillbook.monitoring import error_count


class DrillbookError(ValueError):
    """Base class for failures reported to the caller.

    Each subclass carries a short ``kind`` so that a transport layer can map
    the failure to its own status codes without inspecting messages.
    """

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DrillbookError):
    """Input is malformed: empty names, non-positive repetition goals."""

    kind = "validation"


class NotFoundError(DrillbookError):
    """Entity is missing, inactive, or owned by somebody else."""

    kind = "not_found"


class ConflictError(DrillbookError):
    """Operation clashes with existing state."""

    kind = "conflict"


class UnauthorizedError(DrillbookError):
    """No identity could be resolved for the request."""

    kind = "unauthorized"


def report(error: DrillbookError) -> DrillbookError:
    """Count an error that is about to be raised and hand it back."""
    error_count.labels(error_type=error.kind).inc()
    return error
