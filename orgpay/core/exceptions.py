from fastapi import HTTPException, status
from functools import wraps
from typing import Callable, Any, Optional


class DatabaseError(HTTPException):
    """Custom exception for database errors"""
    def __init__(self, detail: str = "Database operation failed"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)

class NotFoundError(HTTPException):
    """Custom exception for not found errors"""
    def __init__(self, resource: str = "Resource"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource} not found")

class AccountNotFoundError(NotFoundError):
    """The organization has no linked PayPal merchant account"""
    def __init__(self, org_id: Optional[str] = None):
        super().__init__("PayPal account")
        self.org_id = org_id

class SubscriptionNotFoundError(NotFoundError):
    def __init__(self, subscription_id: Optional[str] = None):
        super().__init__("Subscription")
        self.subscription_id = subscription_id

class UnauthorizedError(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

class ForbiddenError(HTTPException):
    """Custom exception for forbidden errors"""
    def __init__(self, detail: str = "Not authorized to access this resource"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

class ValidationError(HTTPException):
    """Custom exception for validation errors"""
    def __init__(self, detail: str = "Validation failed"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class SubscriptionNotActiveError(ValidationError):
    def __init__(self, remote_status: Optional[str]):
        super().__init__(f"Subscription is not active. Status: {remote_status}")
        self.remote_status = remote_status

class InvalidSignatureError(HTTPException):
    """Webhook delivery could not be authenticated"""
    def __init__(self, detail: str = "Invalid webhook signature"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

class UpstreamUnavailableError(HTTPException):
    """PayPal could not be reached (timeout, transport failure, missing credentials). Retryable."""
    def __init__(self, detail: str = "PayPal is unavailable"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)

class PayPalAPIError(HTTPException):
    """PayPal rejected the call. The remote status code is preserved."""
    def __init__(self, status_code: int, message: str, details: Any = None, debug_id: Optional[str] = None):
        if status_code < 400:
            status_code = status.HTTP_502_BAD_GATEWAY
        super().__init__(
            status_code=status_code,
            detail={"error": message, "details": details}
        )
        self.message = message
        self.details = details
        self.debug_id = debug_id

class CaptureFailedError(PayPalAPIError):
    pass


def handle_database_errors(func: Callable) -> Callable:
    """Decorator to handle database errors"""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except HTTPException:
            raise
        except Exception as e:
            raise DatabaseError(f"Database operation failed: {str(e)}")
    return wrapper
