"""Write path: typed marketplace operations and the orchestrator that runs them."""

from NFT_Market.transactions.operations import (
    AuctionsTarget,
    CreateAuction,
    FuseNfts,
    ListForSale,
    ListingsTarget,
    OwnedTarget,
    PlaceBid,
    Purchase,
    RefreshTarget,
    ValidationContext,
    WriteOperation,
)
from NFT_Market.transactions.orchestrator import TransactionOrchestrator

__all__ = [
    "AuctionsTarget",
    "CreateAuction",
    "FuseNfts",
    "ListForSale",
    "ListingsTarget",
    "OwnedTarget",
    "PlaceBid",
    "Purchase",
    "RefreshTarget",
    "TransactionOrchestrator",
    "ValidationContext",
    "WriteOperation",
]
