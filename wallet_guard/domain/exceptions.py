"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    code = "domain_error"


class ValidationError(DomainException):
    """Malformed input rejected before any write"""

    code = "validation_error"


class InsufficientFundsError(DomainException):
    """Withdrawal or transfer exceeds the wallet balance"""

    code = "insufficient_funds"


class ConflictError(DomainException):
    """Lost a race against a concurrent writer; the whole operation may be retried"""

    code = "conflict"


class NotFoundError(DomainException):
    """Unknown account, recipient, entry or alert"""

    code = "not_found"


class InvalidStateError(DomainException):
    """Alert is not in a state that accepts the requested transition"""

    code = "invalid_state"


class TransactionTimeoutError(DomainException):
    """Transaction could not be acquired in time; nothing was written"""

    code = "timeout"


class CategorizerError(DomainException):
    """Categorizer API returned an error or is unavailable"""

    code = "categorizer_error"


class NotificationError(DomainException):
    """Notification sink rejected or failed to accept a message"""

    code = "notification_error"
