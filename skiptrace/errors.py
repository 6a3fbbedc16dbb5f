"""
Error taxonomy for the skip-tracing service.

Every domain failure is a SkipTraceError carrying the HTTP status and the
machine-readable code the API returns. The Flask error handler in main.py
turns these into JSON responses; services only raise them.
"""

from typing import Optional, Dict, Any


class SkipTraceError(Exception):
    """Base exception with status and code for API responses."""

    status_code = 500
    code = "internal_error"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str = None, code: str = None,
                 status_code: int = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        payload.update(self.details)
        return payload


class Unauthenticated(SkipTraceError):
    status_code = 401
    code = "auth_required"
    default_message = "Authentication required"


class ValidationError(SkipTraceError):
    status_code = 400
    code = "invalid_request"
    default_message = "Invalid request"


# =============================================================================
# Not found
# =============================================================================

class NotFound(SkipTraceError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class AccountNotFound(NotFound):
    code = "account_not_found"
    default_message = "Account not found"


class PackageNotFound(NotFound):
    code = "package_not_found"
    default_message = "Credit package not found or not active"


class ResultNotFound(NotFound):
    code = "result_not_found"
    default_message = "Search result not found"


# =============================================================================
# Credits and purchases
# =============================================================================

class InsufficientCredits(SkipTraceError):
    """Raised before any external call when the balance cannot cover it."""

    status_code = 402
    code = "insufficient_credits"
    default_message = "Insufficient credits. Please purchase more credits to continue."

    def __init__(self, balance: int = 0, message: str = None):
        super().__init__(message, details={"balance": balance})
        self.balance = balance


class BelowMinimumQuantity(SkipTraceError):
    status_code = 400
    code = "below_minimum_quantity"

    def __init__(self, minimum: int, requested: int):
        super().__init__(
            f"Minimum purchase quantity for this package is {minimum} credits",
            details={"minimum": minimum, "requested": requested},
        )
        self.minimum = minimum
        self.requested = requested


class EligibilityDenied(SkipTraceError):
    """Package eligibility rule failed against the account's affiliation."""

    status_code = 403
    code = "eligibility_denied"

    REASON_PARTNER_REQUIRED = "partner_required"
    REASON_PARTNER_EXCLUDED = "partner_excluded"
    REASON_MISSING_LOCATION = "missing_partner_location"

    MESSAGES = {
        REASON_PARTNER_REQUIRED: "This package is only available to Stride CRM users",
        REASON_PARTNER_EXCLUDED: "This package is only available to non-Stride CRM users",
        REASON_MISSING_LOCATION: "Stride CRM users must provide a valid Location ID before purchasing this package",
    }

    def __init__(self, reason: str):
        super().__init__(self.MESSAGES.get(reason, "Not eligible for this package"),
                         details={"reason": reason})
        self.reason = reason


class SessionOwnershipMismatch(SkipTraceError):
    status_code = 403
    code = "session_mismatch"
    default_message = "Session user ID does not match authenticated user"


class SandboxDisabled(SkipTraceError):
    status_code = 403
    code = "sandbox_disabled"
    default_message = "Direct credit purchases are only available in sandbox mode"


# =============================================================================
# Upstream and ledger
# =============================================================================

class UpstreamProviderError(SkipTraceError):
    """
    Enrichment API or payment processor failure.

    provider_status and provider_detail are kept for logging only; the
    client sees the generic message.
    """

    status_code = 502
    code = "upstream_error"
    default_message = "The data provider could not complete the request. Please try again."

    def __init__(self, provider: str, provider_status: int = None,
                 provider_detail: Any = None, transient: bool = False):
        super().__init__()
        self.provider = provider
        self.provider_status = provider_status
        self.provider_detail = provider_detail
        self.transient = transient

    def __str__(self):
        return f"{self.provider} error (status={self.provider_status}): {self.provider_detail}"


class SignatureInvalid(SkipTraceError):
    status_code = 400
    code = "invalid_signature"
    default_message = "Invalid signature"


class MalformedPaymentMetadata(SkipTraceError):
    status_code = 400
    code = "malformed_metadata"
    default_message = "Missing metadata"


class LedgerWriteFailure(SkipTraceError):
    """Credit write failed after a confirmed payment; the caller must retry."""

    status_code = 500
    code = "ledger_write_failed"
    default_message = "Failed to update credits"
