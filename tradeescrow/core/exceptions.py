"""
tradeescrow Exception Hierarchy

All exceptions inherit from EscrowError for easy catching.
Every error is raised synchronously by the call that failed; no operation
leaves the ledger partially applied.
"""


class EscrowError(Exception):
    """Base exception for all tradeescrow errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ValidationError(EscrowError):
    """Raised when an amount, identity or request is malformed"""
    pass


class AuthorizationError(EscrowError):
    """Raised when the caller is not the party required by the operation"""
    pass


class SignatureError(AuthorizationError):
    """Raised when a signed call request does not verify"""
    pass


class RequestReplayError(AuthorizationError):
    """Raised when a signed call request nonce is reused"""
    pass


class StaleRequestError(RequestReplayError):
    """Raised when a signed call request was issued outside the accepted time window"""
    pass


class PreconditionError(EscrowError):
    """Raised when a trade is not in the status an operation requires"""
    pass


class TradeNotFoundError(PreconditionError):
    """Raised when no trade exists for the given id"""
    pass


class DeadlineNotReachedError(PreconditionError):
    """Raised when expire_trade is called before the timeout window elapsed"""
    pass


class TransferError(EscrowError):
    """Raised when the asset transfer service rejects a debit or credit"""
    pass


class JournalError(EscrowError):
    """Raised when the event journal cannot be written or loaded"""
    pass


class ConfigError(EscrowError):
    """Raised when configuration is missing or invalid"""
    pass
