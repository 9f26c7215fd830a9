from typing import Optional

class ApiError(Exception):
    """A storefront API call failed.

    ``code`` is one of the server error codes (``VALIDATION_ERROR``,
    ``NOT_FOUND``, ``AUTH_ERROR``, ``TRANSACTION_ERROR``) or
    ``NETWORK_ERROR`` when the request never got a response.
    """

    def __init__(self, code: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code

    def __repr__(self):
        return f"{type(self).__name__}(code={self.code!r}, status_code={self.status_code!r}, message={self.message!r})"

class CheckoutError(ApiError):
    """Checkout failed; the cart was left untouched."""
