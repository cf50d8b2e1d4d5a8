"""CertLedger exception hierarchy."""


class CertLedgerError(Exception):
    """Base exception for all CertLedger errors."""

    def __init__(self, message: str = "", code: str = "CERTLEDGER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(CertLedgerError):
    """Raised when batch or student input is malformed. Raised before any network call."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, code="INVALID_INPUT")


class RenderError(CertLedgerError):
    """Raised when a certificate document cannot be rendered."""

    def __init__(self, message: str = "Certificate could not be rendered"):
        super().__init__(message, code="RENDER_FAILED")


class BatchNotFoundError(CertLedgerError):
    """Raised when a batch cannot be found in storage."""

    def __init__(self, message: str = "Batch not found"):
        super().__init__(message, code="NOT_FOUND")


class InsufficientFundsError(CertLedgerError):
    """Raised when the funding account is below the operating threshold."""

    def __init__(self, message: str = "Insufficient funds", balance: int = 0, required: int = 0):
        self.balance = balance
        self.required = required
        super().__init__(message, code="INSUFFICIENT_FUNDS")


class CommitFailedError(CertLedgerError):
    """Raised when a commitment transaction could not be built, signed or submitted."""

    def __init__(self, message: str = "Ledger commit failed", cause: Exception | None = None):
        self.cause = cause
        super().__init__(message, code="COMMIT_FAILED")


class PersistenceAfterCommitError(CertLedgerError):
    """Raised when storage fails after the ledger accepted the commitment.

    The commitment cannot be rolled back, so the transaction id travels with
    the error for manual reconciliation.
    """

    def __init__(self, message: str = "Persistence failed after ledger commit", transaction_id: str = ""):
        self.transaction_id = transaction_id
        super().__init__(message, code="PERSISTENCE_AFTER_COMMIT")


class NotificationError(CertLedgerError):
    """Raised when certificate references could not be delivered to the partner."""

    def __init__(self, message: str = "Notification failed"):
        super().__init__(message, code="NOTIFICATION_FAILED")


class ChannelError(CertLedgerError):
    """Raised when the private messaging channel rejects or cannot serve a request."""

    def __init__(self, message: str = "Private channel error"):
        super().__init__(message, code="CHANNEL_ERROR")
