"""Marketplace entity models: NFTs, auctions, and the transient bid/fusion requests.

All price fields are ``Decimal`` in major units (already divided by 10^8 by
the codec) and serialize as strings to avoid silent float conversion.
"""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from NFT_Market.models.enums import RarityTier


class NFT(BaseModel):
    """A marketplace NFT as last confirmed by the ledger.

    Frozen because NFTs change only through confirmed transactions, which
    are observed by replacing the whole snapshot.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    owner: str
    name: str
    description: str
    media_uri: str
    rarity: RarityTier
    price: Decimal = Field(ge=0)
    for_sale: bool
    listed_at: datetime.datetime | None = None

    @field_serializer("price")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)


class NftDetails(BaseModel):
    """Display subset of an NFT embedded in each auction record."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    media_uri: str
    rarity: RarityTier


class Auction(BaseModel):
    """An auction over a single NFT.

    ``end_time`` is fixed at creation. Once ``now >= end_time`` the auction
    is terminal and no further bids are accepted.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    nft_id: int = Field(ge=0)
    seller: str
    starting_price: Decimal = Field(ge=0)
    current_bid: Decimal = Field(ge=0)
    highest_bidder: str
    end_time: datetime.datetime
    nft: NftDetails | None = None

    @model_validator(mode="after")
    def _check_bid_floor(self) -> "Auction":
        if self.current_bid < self.starting_price:
            msg = (
                f"current_bid ({self.current_bid}) is below "
                f"starting_price ({self.starting_price})"
            )
            raise ValueError(msg)
        return self

    @field_serializer("starting_price", "current_bid")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)

    def is_ended(self, now: datetime.datetime) -> bool:
        """Return True once the auction no longer accepts bids."""
        return now >= self.end_time


class Bid(BaseModel):
    """A bid in flight. Never persisted beyond the submission."""

    model_config = ConfigDict(frozen=True)

    auction_id: int
    bidder: str
    amount: Decimal

    @field_serializer("amount")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)


class FusionRequest(BaseModel):
    """Two owned NFTs to be fused into a new one by the marketplace module."""

    model_config = ConfigDict(frozen=True)

    first_id: int
    second_id: int


class FusionResult(BaseModel):
    """The NFT minted by a confirmed fusion, as read back from the ledger."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str
    media_uri: str
    rarity: RarityTier
