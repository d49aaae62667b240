"""Custom exceptions for split-ledger."""


class SplitLedgerError(Exception):
    """Base exception for all split-ledger errors."""

    status_code = 500

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ConfigurationError(SplitLedgerError):
    """Raised when configuration is invalid or missing."""

    pass


class NotFoundError(SplitLedgerError):
    """Raised when a group, expense or member does not exist."""

    status_code = 404

    def __init__(self, kind: str, identifier: object, message: str | None = None):
        self.kind = kind
        self.identifier = identifier
        super().__init__(message or f"{kind.capitalize()} {identifier} not found")


class ValidationError(SplitLedgerError):
    """Raised when caller input is rejected (amounts, splits, eligibility)."""

    status_code = 400


class IntegrityError(SplitLedgerError):
    """Raised when stored data or engine output breaks a ledger invariant.

    No caller action can fix this; it indicates a bug upstream of the
    computation that detected it.
    """

    status_code = 500
