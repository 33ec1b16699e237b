"""
Domain error taxonomy.

Services raise these; the FastAPI handler in main.py renders them as
{"detail": ..., "code": ...} with the class status code.
"""


class MarketplaceError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# -----------------------------
# VALIDATION (400)
# -----------------------------

class ValidationFailed(MarketplaceError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class BadRequest(ValidationFailed):
    code = "BAD_REQUEST"


class MissingReason(ValidationFailed):
    code = "MISSING_REASON"
    default_message = "Reason is required"


class InvalidPlacement(ValidationFailed):
    code = "INVALID_PLACEMENT"
    default_message = "Product must have either category and item, or a kit"


class InvalidPricing(ValidationFailed):
    code = "INVALID_PRICING"
    default_message = "Product needs a positive price amount or credits cost"


class IncompatibleAsset(ValidationFailed):
    code = "INCOMPATIBLE_ASSET"
    default_message = "File role is not compatible with this product"


class InvalidOrExpired(ValidationFailed):
    code = "INVALID_OR_EXPIRED"
    default_message = "Invalid or expired code"


# -----------------------------
# STATE CONFLICT (409)
# -----------------------------

class StateConflict(MarketplaceError):
    status_code = 409
    code = "STATE_CONFLICT"
    default_message = "Operation not allowed in current state"


class AlreadyInState(StateConflict):
    code = "ALREADY_IN_STATE"


class AlreadyApproved(AlreadyInState):
    code = "ALREADY_APPROVED"
    default_message = "Already approved"


class AlreadyRejected(AlreadyInState):
    code = "ALREADY_REJECTED"
    default_message = "Already rejected"


class AlreadyBlacklisted(AlreadyInState):
    code = "ALREADY_BLACKLISTED"
    default_message = "Seller is already blacklisted"


class NotBlacklisted(StateConflict):
    code = "NOT_BLACKLISTED"
    default_message = "Seller is not blacklisted"


class UniqueConstraintViolation(StateConflict):
    code = "DUPLICATE"
    default_message = "Duplicate value"


# -----------------------------
# LOOKUP / ACCESS
# -----------------------------

class NotFound(MarketplaceError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class Unauthenticated(MarketplaceError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_message = "Authentication required"


class Unauthorized(MarketplaceError):
    status_code = 403
    code = "UNAUTHORIZED"
    default_message = "Insufficient permissions"


class RateLimited(MarketplaceError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Too many requests. Please try again later."


# -----------------------------
# UPSTREAM
# -----------------------------

class UpstreamNonFatal(MarketplaceError):
    status_code = 502
    code = "UPSTREAM_NON_FATAL"


class NotificationFailed(UpstreamNonFatal):
    code = "NOTIFICATION_FAILED"
    default_message = "Notification delivery failed"


class UpstreamFatal(MarketplaceError):
    status_code = 502
    code = "UPSTREAM_FATAL"
    default_message = "Upstream service failed"


class ExhaustedRetries(MarketplaceError):
    status_code = 500
    code = "EXHAUSTED_RETRIES"
    default_message = "Could not generate a unique value"
