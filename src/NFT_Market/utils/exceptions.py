"""Custom exception hierarchy for the NFT Market client.

All domain-specific exceptions inherit from MarketError, which carries
contextual information about which component failed and, for HTTP-backed
failures, the status code returned by the ledger node.
"""


class MarketError(Exception):
    """Base exception for all marketplace client failures.

    Attributes:
        source: The component or endpoint that failed (e.g., "gateway", "codec").
        http_status: The HTTP status code, if the failure was HTTP-related.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str,
        http_status: int | None = None,
    ) -> None:
        self.source = source
        self.http_status = http_status
        super().__init__(message)


class NetworkError(MarketError):
    """Raised when the ledger node is unreachable, times out, or returns 5xx."""


class LedgerRequestError(MarketError):
    """Raised when the ledger node rejects a read request (HTTP 4xx)."""


class DecodeError(MarketError):
    """Raised when a ledger-encoded value cannot be decoded.

    Attributes:
        field: Name of the field being decoded, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        source: str = "codec",
    ) -> None:
        self.field = field
        super().__init__(message, source=source)


class ValidationError(MarketError):
    """Raised when a local precondition fails before any network call."""

    def __init__(self, message: str, *, source: str = "validation") -> None:
        super().__init__(message, source=source)


class TransactionInProgressError(ValidationError):
    """Raised when a write is requested while another is still in flight."""


class TransactionError(MarketError):
    """Base for failures of a write operation after it left the building phase.

    Attributes:
        reason: Machine-readable failure reason (see ``FailureReason``).
        transaction_hash: Hash of the submitted transaction, if one exists.
    """

    def __init__(
        self,
        message: str,
        *,
        reason: str,
        transaction_hash: str | None = None,
        source: str = "orchestrator",
    ) -> None:
        self.reason = reason
        self.transaction_hash = transaction_hash
        super().__init__(message, source=source)


class UserRejectedError(TransactionError):
    """Raised when the wallet agent reports that the user declined to sign."""

    def __init__(self, message: str = "User rejected the transaction") -> None:
        super().__init__(message, reason="user_rejected", source="wallet")


class AgentError(TransactionError):
    """Raised when the wallet agent fails for any reason other than a decline."""


class ChainRejectedError(TransactionError):
    """Raised when a submitted transaction reached finality as a failure.

    Attributes:
        vm_status: The ledger's status string for the failed transaction.
    """

    def __init__(
        self,
        message: str,
        *,
        vm_status: str,
        transaction_hash: str | None = None,
    ) -> None:
        self.vm_status = vm_status
        super().__init__(
            message,
            reason="chain_rejected",
            transaction_hash=transaction_hash,
            source="ledger",
        )


class FinalityTimeoutError(TransactionError):
    """Raised when an opt-in finality timeout elapses before the ledger answers."""
