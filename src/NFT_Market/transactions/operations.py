"""Write operations offered by the marketplace module.

Each operation knows three things about itself:

- the local preconditions it must satisfy before anything is signed
  (``validate_preconditions``), raising ``ValidationError`` on the first violation,
- the entry-function intent to hand to the wallet (``build_intent``), with
  every amount converted to minor units by the codec,
- which repository scopes its confirmation may have changed
  (``affected_targets``).
"""

from __future__ import annotations

import datetime
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from pydantic import BaseModel, ConfigDict

from NFT_Market.ledger.codec import minor_units_argument, to_minor_units
from NFT_Market.ledger.schemas import module_function_id
from NFT_Market.models.enums import OperationKind
from NFT_Market.models.market import NFT, Auction, Bid, FusionRequest
from NFT_Market.models.transactions import TransactionIntent
from NFT_Market.utils.exceptions import ValidationError


@dataclass(frozen=True)
class ValidationContext:
    """Facts an operation checks its preconditions against."""

    sender: str
    now: datetime.datetime


@dataclass(frozen=True)
class ListingsTarget:
    """The marketplace listing needs a refresh."""


@dataclass(frozen=True)
class AuctionsTarget:
    """The auction list needs a refresh."""


@dataclass(frozen=True)
class OwnedTarget:
    """Every observed owned-NFT scope of *owner* needs a refresh."""

    owner: str


RefreshTarget = ListingsTarget | AuctionsTarget | OwnedTarget


class WriteOperation(BaseModel, ABC):
    """Base class of every user-initiated write."""

    model_config = ConfigDict(frozen=True)

    kind: ClassVar[OperationKind]

    @abstractmethod
    def validate_preconditions(self, context: ValidationContext) -> None:
        """Raise ``ValidationError`` if the operation must not be submitted."""

    @abstractmethod
    def arguments(self, marketplace: str) -> list[str]:
        """Ordered entry-function arguments, all encoded as strings."""

    @abstractmethod
    def affected_targets(self, sender: str) -> list[RefreshTarget]:
        """Repository scopes the confirmed transaction may have changed."""

    def build_intent(self, marketplace: str, module_name: str) -> TransactionIntent:
        return TransactionIntent(
            function=module_function_id(marketplace, module_name, self.kind.value),
            type_arguments=[],
            arguments=self.arguments(marketplace),
        )


def _require_positive(amount: Decimal, label: str) -> None:
    # Compare in minor units so amounts that round to zero are rejected too
    if to_minor_units(amount) <= 0:
        raise ValidationError(f"{label} must be greater than zero, got {amount}")


def _same_address(left: str, right: str) -> bool:
    return left.lower() == right.lower()


class ListForSale(WriteOperation):
    """Offer an owned NFT on the marketplace at a fixed price."""

    kind: ClassVar[OperationKind] = OperationKind.LIST_FOR_SALE

    nft: NFT
    price: Decimal

    def validate_preconditions(self, context: ValidationContext) -> None:
        if not _same_address(self.nft.owner, context.sender):
            raise ValidationError(f"NFT {self.nft.id} is not owned by {context.sender}")
        _require_positive(self.price, "Sale price")

    def arguments(self, marketplace: str) -> list[str]:
        return [marketplace, str(self.nft.id), minor_units_argument(self.price)]

    def affected_targets(self, sender: str) -> list[RefreshTarget]:
        return [OwnedTarget(owner=sender), ListingsTarget()]


class Purchase(WriteOperation):
    """Buy a listed NFT at its listed price."""

    kind: ClassVar[OperationKind] = OperationKind.PURCHASE

    nft: NFT

    def validate_preconditions(self, context: ValidationContext) -> None:
        if not self.nft.for_sale:
            raise ValidationError(f"NFT {self.nft.id} is not listed for sale")
        if _same_address(self.nft.owner, context.sender):
            raise ValidationError(f"NFT {self.nft.id} is already owned by the buyer")
        _require_positive(self.nft.price, "Purchase price")

    def arguments(self, marketplace: str) -> list[str]:
        return [marketplace, str(self.nft.id), minor_units_argument(self.nft.price)]

    def affected_targets(self, sender: str) -> list[RefreshTarget]:
        return [ListingsTarget(), OwnedTarget(owner=sender), OwnedTarget(owner=self.nft.owner)]


class CreateAuction(WriteOperation):
    """Put an owned NFT up for auction until *end_time*."""

    kind: ClassVar[OperationKind] = OperationKind.CREATE_AUCTION

    nft: NFT
    starting_price: Decimal
    end_time: datetime.datetime

    def validate_preconditions(self, context: ValidationContext) -> None:
        if not _same_address(self.nft.owner, context.sender):
            raise ValidationError(f"NFT {self.nft.id} is not owned by {context.sender}")
        _require_positive(self.starting_price, "Starting price")
        if self.end_time <= context.now:
            raise ValidationError(f"Auction end time {self.end_time.isoformat()} is not in the future")

    def arguments(self, marketplace: str) -> list[str]:
        return [
            marketplace,
            str(self.nft.id),
            minor_units_argument(self.starting_price),
            str(int(self.end_time.timestamp())),
        ]

    def affected_targets(self, sender: str) -> list[RefreshTarget]:
        return [OwnedTarget(owner=sender), ListingsTarget(), AuctionsTarget()]


class PlaceBid(WriteOperation):
    """Bid on a running auction. The amount must beat the current bid."""

    kind: ClassVar[OperationKind] = OperationKind.PLACE_BID

    auction: Auction
    amount: Decimal

    def bid(self, bidder: str) -> Bid:
        return Bid(auction_id=self.auction.id, bidder=bidder, amount=self.amount)

    def validate_preconditions(self, context: ValidationContext) -> None:
        if self.auction.is_ended(context.now):
            raise ValidationError(f"Auction {self.auction.id} has ended")
        if _same_address(self.auction.seller, context.sender):
            raise ValidationError("Sellers cannot bid on their own auction")
        if to_minor_units(self.amount) <= to_minor_units(self.auction.current_bid):
            raise ValidationError(
                f"Bid {self.amount} must be greater than the current bid {self.auction.current_bid}"
            )

    def arguments(self, marketplace: str) -> list[str]:
        return [marketplace, str(self.auction.id), minor_units_argument(self.amount)]

    def affected_targets(self, sender: str) -> list[RefreshTarget]:
        return [AuctionsTarget()]


class FuseNfts(WriteOperation):
    """Fuse two owned, unlisted, unauctioned NFTs into a new one."""

    kind: ClassVar[OperationKind] = OperationKind.FUSE

    request: FusionRequest
    owned: tuple[NFT, ...]
    auctions: tuple[Auction, ...] = ()

    def validate_preconditions(self, context: ValidationContext) -> None:
        first_id, second_id = self.request.first_id, self.request.second_id
        if first_id == second_id:
            raise ValidationError("Fusion inputs must be distinct")

        owned_by_id = {
            nft.id: nft for nft in self.owned if _same_address(nft.owner, context.sender)
        }
        auctioned = {auction.nft_id for auction in self.auctions}
        for nft_id in (first_id, second_id):
            nft = owned_by_id.get(nft_id)
            if nft is None:
                raise ValidationError(f"NFT {nft_id} is not owned by {context.sender}")
            if nft.for_sale:
                raise ValidationError(f"NFT {nft_id} is listed for sale and cannot be fused")
            if nft_id in auctioned:
                raise ValidationError(f"NFT {nft_id} is under auction and cannot be fused")

    def arguments(self, marketplace: str) -> list[str]:
        return [marketplace, str(self.request.first_id), str(self.request.second_id)]

    def affected_targets(self, sender: str) -> list[RefreshTarget]:
        return [OwnedTarget(owner=sender)]
