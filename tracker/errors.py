"""Error taxonomy for the production tracker core."""


class ProductionError(Exception):
    """Base class for errors raised by the progression core."""
    status_code = 500
    error = "Production tracker error"

    def __init__(self, message=None, **details):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details

    def to_dict(self):
        body = {"success": False, "error": self.error, "details": self.message}
        if self.details:
            body["context"] = self.details
        return body


class InvalidInput(ProductionError):
    """Missing or malformed required fields. Not retried."""
    status_code = 400
    error = "Invalid input"


class NotFound(ProductionError):
    status_code = 404
    error = "Not found"


class DuplicateJobNumber(ProductionError):
    """jobNumber uniqueness constraint violated."""
    status_code = 409
    error = "Duplicate job number"


class StoreUnavailable(ProductionError):
    """Transient infrastructure failure. Safe to retry the whole operation, except job creation."""
    status_code = 503
    error = "Store unavailable"


class EventLogAppendFailed(ProductionError):
    """Raised by the store when a system update cannot be written; never surfaced to callers."""
    error = "Event log append failed"
