from typing import Any, Dict, Optional

class OrderWorkflowError(Exception):
    """Base for every error an order workflow reports to its caller."""

    status_code = 500
    reason = "internal error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "error": self.message, "reason": self.reason}
        if self.details:
            body["details"] = self.details
        return body

class OrderValidationError(OrderWorkflowError):
    status_code = 400

    def __init__(self, message: str, reason: str = "missing field", field: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.field:
            body["field"] = self.field
        return body

class InsufficientCreditsError(OrderWorkflowError):
    status_code = 402
    reason = "insufficient credits"

class CourierBookingError(OrderWorkflowError):
    status_code = 400
    reason = "courier booking failed"

    def __init__(self, message: str, upstream_error: Optional[str] = None):
        super().__init__(message, details=upstream_error)
        self.upstream_error = upstream_error

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["courierError"] = self.upstream_error
        return body

class OrdersNotFoundError(OrderWorkflowError):
    status_code = 404
    reason = "not found"

class OrdersNotPermittedError(OrderWorkflowError):
    status_code = 403
    reason = "not permitted"

class OrderWorkflowInternalError(OrderWorkflowError):
    status_code = 500
    reason = "internal error"
