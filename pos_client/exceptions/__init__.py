"""Custom exceptions for the checkout terminal service."""


class PosError(Exception):
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


class ValidationError(PosError):
    """Input rejected locally; never sent to the backend."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class BusinessLogicError(PosError):
    """Exception raised for business rule violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


def _fmt_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')


class InsufficientStockError(BusinessLogicError):
    """Raised when an add would push a cart line above the known stock."""
    def __init__(self, product_name, requested, available, in_cart=0):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        self.in_cart = in_cart
        if in_cart:
            message = (
                f"Cannot add {_fmt_qty(requested)} more to cart. "
                f"Only {_fmt_qty(available - in_cart)} of {product_name} left in stock."
            )
        else:
            message = (
                f"Cannot add {_fmt_qty(requested)} of {product_name}. "
                f"Only {_fmt_qty(available)} left in stock."
            )
        super().__init__(message, status_code=409)


class OutOfStockError(BusinessLogicError):
    """Raised when the product snapshot reports no stock at all."""
    def __init__(self, product_name):
        self.product_name = product_name
        super().__init__(f"{product_name} is currently out of stock.", status_code=409)


class DuplicateScanError(BusinessLogicError):
    """Raised when a cart QR is scanned again while its items are still in the cart."""
    def __init__(self, message="This QR cart has already been added."):
        super().__init__(message, status_code=409)


class ScanInProgressError(BusinessLogicError):
    """Raised while the scan gate is closed."""
    def __init__(self, message="Scan ignored: the previous scan is still being processed."):
        super().__init__(message, status_code=429)


class BackendError(PosError):
    """The backend could not be reached or answered with something unparseable."""
    def __init__(self, message="Failed to connect to server. Please check your network and backend.", payload=None):
        super().__init__(message, 502, payload)


class BackendRejectedError(PosError):
    """The backend answered but refused the request (non-success status)."""
    def __init__(self, message, data=None, http_status=None):
        self.data = data
        self.http_status = http_status
        payload = {'data': data} if data is not None else None
        super().__init__(message, 422, payload)
