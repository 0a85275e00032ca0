"""Response schemas for the marketplace module's views and resources.

The ledger returns loosely typed JSON: u64 values as strings, byte vectors as
either ``0x``-prefixed hex or arrays of ints, and some views as positional
tuples. These schemas pin down the expected shape of each call so that the
codec can fail closed with ``DecodeError`` instead of producing half-filled
records.
"""

from __future__ import annotations

from typing import Final

from pydantic import BaseModel, ConfigDict

from NFT_Market.utils.exceptions import DecodeError

# ---------------------------------------------------------------------------
# Module function names
# ---------------------------------------------------------------------------

VIEW_GET_ALL_AUCTIONS: Final[str] = "get_all_auctions"
VIEW_GET_NFTS_FOR_OWNER: Final[str] = "get_all_nfts_for_owner"
VIEW_GET_NFT_DETAILS: Final[str] = "get_nft_details"
VIEW_GET_LAST_MINTED: Final[str] = "get_last_minted_nft"

MARKETPLACE_RESOURCE: Final[str] = "Marketplace"

# Byte vectors arrive as hex strings or as arrays of byte values
RawBytes = str | list[int]
RawU64 = int | str


def module_function_id(address: str, module: str, function: str) -> str:
    """Return the fully qualified ``address::module::function`` identifier."""
    return f"{address}::{module}::{function}"


class RawNftRecord(BaseModel):
    """One NFT as stored in the Marketplace resource."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: RawU64
    owner: str
    name: RawBytes
    description: RawBytes
    uri: RawBytes
    price: RawU64
    for_sale: bool
    rarity: RawU64
    listed_at: RawU64 | None = None


class RawNftDetails(BaseModel):
    """NFT display fields nested inside an auction record."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: RawBytes
    description: RawBytes
    uri: RawBytes
    rarity: RawU64


class RawAuctionRecord(BaseModel):
    """One element of the ``get_all_auctions`` result vector."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: RawU64
    nft_id: RawU64
    seller: str
    starting_price: RawU64
    current_bid: RawU64
    highest_bidder: str
    end_time: RawU64
    nft_details: RawNftDetails | None = None


class NftDetailsResponse(BaseModel):
    """Positional result of ``get_nft_details``.

    Field order: id, owner, name, description, uri, price, for_sale, rarity,
    and optionally listed_at.
    """

    model_config = ConfigDict(frozen=True)

    id: RawU64
    owner: str
    name: RawBytes
    description: RawBytes
    uri: RawBytes
    price: RawU64
    for_sale: bool
    rarity: RawU64
    listed_at: RawU64 | None = None

    @classmethod
    def from_positional(cls, values: list[object]) -> NftDetailsResponse:
        names = list(cls.model_fields)
        return cls.model_validate(_zip_positional(names, values, required=8, label="get_nft_details"))


class LastMintedResponse(BaseModel):
    """Positional result of ``get_last_minted_nft``: id, name, description, uri, rarity."""

    model_config = ConfigDict(frozen=True)

    id: RawU64
    name: RawBytes
    description: RawBytes
    uri: RawBytes
    rarity: RawU64

    @classmethod
    def from_positional(cls, values: list[object]) -> LastMintedResponse:
        names = list(cls.model_fields)
        return cls.model_validate(
            _zip_positional(names, values, required=5, label="get_last_minted_nft")
        )


def _zip_positional(
    names: list[str],
    values: list[object],
    *,
    required: int,
    label: str,
) -> dict[str, object]:
    """Map a positional view result onto field names, checking its arity."""
    if not isinstance(values, list) or len(values) < required:
        count = len(values) if isinstance(values, list) else "non-list"
        raise DecodeError(
            f"{label} returned {count} values, expected at least {required}",
            field=label,
        )
    return dict(zip(names, values[: len(names)], strict=False))
