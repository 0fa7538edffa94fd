# billing/exceptions.py

"""
Billing error taxonomy.

Every error carries the HTTP status the API answers with and a stable
public message. Dependency and internal errors keep a generic public
message; the underlying cause is only logged.
"""


class BillingError(Exception):
    """Base class for billing engine errors."""

    status_code = 500
    default_message = "billing operation failed"

    def __init__(self, message=None):
        self.public_message = message or self.default_message
        super().__init__(self.public_message)


class InputValidationError(BillingError):
    """Invalid request input. Raised before any external call."""

    status_code = 400
    default_message = "invalid request"


class InvalidPeriodFormat(InputValidationError):
    default_message = "invalid month format"


class BatchLimitExceeded(InputValidationError):
    default_message = "batch limit exceeded"


class NotFoundError(BillingError):
    status_code = 404
    default_message = "not found"


class ConflictError(BillingError):
    """Billing record already processed or claimed by another settlement."""

    status_code = 409
    default_message = "already processed"


class DependencyError(BillingError):
    """Datastore, transfer service, renderer or notification failure."""

    status_code = 500
    default_message = "a dependent service failed, please retry later"


class InternalError(BillingError):
    status_code = 500
    default_message = "internal server error"
