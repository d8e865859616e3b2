"""Custom exceptions for the salon billing engine."""

class SalonError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(SalonError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(SalonError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InvalidLineItemError(BusinessLogicError):
    """Raised when a line item carries a negative price or quantity, or a malformed attribution."""
    def __init__(self, message, ref_id=None):
        super().__init__(message, status_code=400, payload={'error': 'INVALID_LINE_ITEM', 'ref_id': ref_id})
        self.ref_id = ref_id

class InvalidDiscountError(BusinessLogicError):
    """Raised when a manual discount falls outside its allowed range."""
    def __init__(self, message):
        super().__init__(message, status_code=400, payload={'error': 'INVALID_DISCOUNT'})

class ValidationFailedError(BusinessLogicError):
    """Raised when one or more checkout invariants do not hold. Carries every problem found."""
    def __init__(self, problems):
        self.problems = list(problems)
        message = '; '.join(p.message for p in self.problems) or 'Validation failed'
        super().__init__(
            message,
            status_code=422,
            payload={'error': 'VALIDATION_FAILED', 'problems': [p.to_dict() for p in self.problems]}
        )

class CommitFailedError(SalonError):
    """Persistence failed before a bill existed. Nothing was written; safe to retry."""
    def __init__(self, message="Could not record the sale, please retry"):
        super().__init__(message, 503, {'error': 'COMMIT_FAILED', 'retryable': True})
