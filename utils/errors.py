"""
utils/errors.py
---------------
Domain exceptions raised by the service layer.

The message of every MarketplaceError is written for the end user, so
handlers can reply with ``str(error)`` directly.
"""

from typing import Any, Optional


class MarketplaceError(Exception):
    """Base exception for all expected business-rule failures."""

    def __init__(self, message: str, code: str = "MARKETPLACE_ERROR", details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.details = details
        super().__init__(self.message)


class NotFoundError(MarketplaceError):
    """Raised when a user, company, product, code or withdrawal does not exist."""

    def __init__(self, message: str = "❌ Not found.", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", details=details)


class PermissionDeniedError(MarketplaceError):
    """Raised when the caller may not act on the resource."""

    def __init__(self, message: str = "⛔ You are not allowed to do that.", details: Optional[Any] = None):
        super().__init__(message, code="PERMISSION_DENIED", details=details)


class ValidationError(MarketplaceError):
    """Raised when user input is malformed or out of range."""

    def __init__(self, message: str = "⚠️ Invalid input.", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class InsufficientStockError(MarketplaceError):
    def __init__(self, message: str = "❌ Not enough stock.", details: Optional[Any] = None):
        super().__init__(message, code="INSUFFICIENT_STOCK", details=details)


class InvalidReferralCodeError(MarketplaceError):
    def __init__(self, message: str = "❌ Referral code not found or already used.", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_REFERRAL_CODE", details=details)


class SelfReferralError(InvalidReferralCodeError):
    def __init__(self, message: str = "❌ Buyers cannot use their own referral code.", details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.code = "SELF_REFERRAL"


class InsufficientBalanceError(MarketplaceError):
    def __init__(self, message: str = "❌ Insufficient balance.", details: Optional[Any] = None):
        super().__init__(message, code="INSUFFICIENT_BALANCE", details=details)


class BelowMinimumPayoutError(MarketplaceError):
    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message, code="BELOW_MINIMUM", details=details)


class InvalidStateError(MarketplaceError):
    """Raised when a withdrawal or sale is not in the state the action requires."""

    def __init__(self, message: str = "❌ This request was already processed.", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_STATE", details=details)
