"""Pydantic v2 models, enums, and type definitions.

Re-exports all public models so consumers can import directly:
    from NFT_Market.models import NFT, Auction, RarityTier
"""

from NFT_Market.models.enums import (
    FailureReason,
    OperationKind,
    RarityTier,
    SortOrder,
    TransactionState,
)
from NFT_Market.models.health import HealthStatus, LedgerInfo
from NFT_Market.models.market import (
    NFT,
    Auction,
    Bid,
    FusionRequest,
    FusionResult,
    NftDetails,
)
from NFT_Market.models.query import QueryFilters, QueryResult, ViewState
from NFT_Market.models.transactions import (
    TransactionAttempt,
    TransactionHandle,
    TransactionIntent,
    TransactionReceipt,
    TransactionStatus,
)

__all__ = [
    # Enums
    "FailureReason",
    "OperationKind",
    "RarityTier",
    "SortOrder",
    "TransactionState",
    # Marketplace
    "NFT",
    "Auction",
    "Bid",
    "FusionRequest",
    "FusionResult",
    "NftDetails",
    # Query
    "QueryFilters",
    "QueryResult",
    "ViewState",
    # Transactions
    "TransactionAttempt",
    "TransactionHandle",
    "TransactionIntent",
    "TransactionReceipt",
    "TransactionStatus",
    # Health
    "HealthStatus",
    "LedgerInfo",
]
