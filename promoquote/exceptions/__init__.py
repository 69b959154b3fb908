"""Custom exceptions for the promoquote application."""


class PromoQuoteError(Exception):
    """
    Base exception for all application errors.

    The Flask error handler renders it as ``{"status": "error", "message": ...}``
    plus any payload keys, with ``status_code`` as HTTP status.
    """
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


class BusinessLogicError(PromoQuoteError):
    """Invalid input or a rule violation the caller can fix."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class QuoteLockedError(BusinessLogicError):
    """The quote's status or validity date no longer allows changes."""
    def __init__(self, quote):
        super().__init__(
            f'Quote {quote.quote_number} can no longer be modified',
            payload={'quote_number': quote.quote_number, 'quote_status': quote.status},
        )


class NotFoundError(PromoQuoteError):
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class CatalogUnavailableError(PromoQuoteError):
    """Promotions, codes or redemption counters could not be read."""
    def __init__(self, message="Promotion catalog unavailable", payload=None):
        super().__init__(message, 503, payload)
