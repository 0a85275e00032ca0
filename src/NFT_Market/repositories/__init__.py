"""Repository layer: typed, immutable snapshots of ledger state per scope.

Re-exports the public API so consumers can import directly:
    from NFT_Market.repositories import ListingsRepository, ListingsScope
"""

from NFT_Market.repositories.auctions import AuctionsRepository, AuctionsScope
from NFT_Market.repositories.base import Snapshot, SnapshotRepository
from NFT_Market.repositories.listings import ListingsRepository, ListingsScope
from NFT_Market.repositories.owned import OwnedNftsRepository, OwnedScope

__all__ = [
    "AuctionsRepository",
    "AuctionsScope",
    "ListingsRepository",
    "ListingsScope",
    "OwnedNftsRepository",
    "OwnedScope",
    "Snapshot",
    "SnapshotRepository",
]
