"""Enum types for the marketplace domain.

Use enum members in business logic, never raw strings or integers.
"""

from enum import IntEnum, StrEnum


class RarityTier(IntEnum):
    """Rarity tier assigned to an NFT by the marketplace module (1..4)."""

    COMMON = 1
    UNCOMMON = 2
    RARE = 3
    SUPER_RARE = 4

    @property
    def label(self) -> str:
        """Human-readable tier name."""
        return self.name.replace("_", " ").title()


class SortOrder(StrEnum):
    """Sort orders offered by the marketplace view."""

    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    DATE_ASC = "date_asc"
    DATE_DESC = "date_desc"
    RARITY_ASC = "rarity_asc"
    RARITY_DESC = "rarity_desc"


class TransactionState(StrEnum):
    """Lifecycle state of a user-initiated write operation."""

    IDLE = "idle"
    BUILDING = "building"
    AWAITING_SIGNATURE = "awaiting_signature"
    SUBMITTED = "submitted"
    AWAITING_FINALITY = "awaiting_finality"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class FailureReason(StrEnum):
    """Why a write operation ended in ``TransactionState.FAILED``."""

    VALIDATION = "validation"
    USER_REJECTED = "user_rejected"
    AGENT_ERROR = "agent_error"
    CHAIN_REJECTED = "chain_rejected"
    NETWORK = "network"
    TIMEOUT = "timeout"


class OperationKind(StrEnum):
    """Write operations exposed by the marketplace module."""

    LIST_FOR_SALE = "list_for_sale"
    PURCHASE = "purchase_nft"
    CREATE_AUCTION = "create_auction"
    PLACE_BID = "place_bid"
    FUSE = "fuse_nfts"
