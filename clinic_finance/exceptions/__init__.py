"""Custom exceptions for the clinic finance engine."""


class FinanceError(Exception):
    """Base exception for all application errors."""
    error_type = 'finance_error'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['error_type'] = self.error_type
        rv['status'] = 'error'
        return rv


class ValidationError(FinanceError):
    """Malformed or missing required input."""
    error_type = 'validation_error'

    def __init__(self, message, field=None, payload=None):
        payload = dict(payload or ())
        if field:
            payload['field'] = field
        super().__init__(message, 400, payload)
        self.field = field


class NotFoundError(FinanceError):
    """Raised when a resource is not found."""
    error_type = 'not_found'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ReferentialIntegrityError(FinanceError):
    """A foreign id (e.g. appointment_id) does not exist in its owning table."""
    error_type = 'referential_integrity_error'

    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class LedgerConsistencyError(FinanceError):
    """The payment and its ledger entry could not be written together."""
    error_type = 'ledger_consistency_error'

    def __init__(self, message="Payment and ledger entry could not be recorded together", payload=None):
        super().__init__(message, 500, payload)


class ImmutableLedgerError(FinanceError):
    """Raised when code tries to mutate or delete a persisted ledger row."""
    error_type = 'immutable_ledger'

    def __init__(self, message="Financial transactions are immutable"):
        super().__init__(message, 409)
