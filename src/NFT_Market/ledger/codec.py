"""Conversions between ledger-native encodings and application types.

Every boundary crossing of a currency amount goes through ``to_major_units``
or ``to_minor_units``; call sites never multiply or divide by 10^8 themselves.
Record decoders validate raw payloads against ``ledger.schemas`` and raise
``DecodeError`` for anything structurally wrong. Text fields are the one
exception: a malformed string blanks that field but keeps the record.
"""

from __future__ import annotations

import datetime
import logging
import string
from collections.abc import Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Final, TypeVar

import pydantic

from NFT_Market.ledger.schemas import (
    LastMintedResponse,
    NftDetailsResponse,
    RawAuctionRecord,
    RawNftDetails,
    RawNftRecord,
)
from NFT_Market.models.enums import RarityTier
from NFT_Market.models.market import NFT, Auction, FusionResult, NftDetails
from NFT_Market.utils.exceptions import DecodeError, ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=pydantic.BaseModel)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MINOR_UNIT_EXPONENT: Final[int] = 8
MINOR_UNITS_PER_MAJOR: Final[int] = 10**MINOR_UNIT_EXPONENT
U64_MAX: Final[int] = 2**64 - 1

TEXT_PLACEHOLDER: Final[str] = ""
_HEX_PREFIX: Final[str] = "0x"


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def decode_text(raw: str | bytes | Sequence[int]) -> str:
    """Decode a ledger byte vector as UTF-8 text.

    Accepts a hex string (two characters per byte, optional ``0x`` prefix),
    a sequence of byte values, or ``bytes``.

    Raises:
        DecodeError: If the input is not a valid byte encoding or not UTF-8.
    """
    if isinstance(raw, bytes):
        data = raw
    elif isinstance(raw, str):
        data = _hex_to_bytes(raw)
    elif isinstance(raw, Sequence):
        data = _ints_to_bytes(raw)
    else:
        raise DecodeError(f"Unsupported byte container: {type(raw).__name__}")

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Invalid UTF-8 byte sequence: {exc.reason}") from exc


def decode_text_or_placeholder(
    raw: object,
    *,
    field: str,
    placeholder: str = TEXT_PLACEHOLDER,
) -> str:
    """Decode a text field, substituting *placeholder* when it is malformed."""
    try:
        return decode_text(raw)  # type: ignore[arg-type]
    except DecodeError as exc:
        logger.warning("Blanking undecodable field %s: %s", field, exc)
        return placeholder


def _hex_to_bytes(value: str) -> bytes:
    digits = value[2:] if value.lower().startswith(_HEX_PREFIX) else value
    if len(digits) % 2:
        raise DecodeError(f"Hex string has odd length {len(digits)}")
    if not all(char in string.hexdigits for char in digits):
        raise DecodeError(f"Invalid hex string: {value[:20]!r}")
    return bytes.fromhex(digits)


def _ints_to_bytes(values: Sequence[int]) -> bytes:
    for byte in values:
        if isinstance(byte, bool) or not isinstance(byte, int) or not 0 <= byte <= 255:  # noqa: PLR2004
            raise DecodeError(f"Byte value out of range: {byte!r}")
    return bytes(values)


# ---------------------------------------------------------------------------
# Currency
# ---------------------------------------------------------------------------


def to_major_units(minor_units: int) -> Decimal:
    """Convert a ledger amount in minor units to a display ``Decimal``.

    Raises:
        DecodeError: If *minor_units* is negative or not an integer.
    """
    if isinstance(minor_units, bool) or not isinstance(minor_units, int):
        raise DecodeError(f"Amount must be an integer, got {type(minor_units).__name__}")
    if minor_units < 0:
        raise DecodeError(f"Amount must be non-negative, got {minor_units}")
    return Decimal(minor_units).scaleb(-MINOR_UNIT_EXPONENT)


def to_minor_units(major_units: Decimal | int | str) -> int:
    """Convert a display amount to integer minor units, rounding half-up.

    Raises:
        ValidationError: If the amount is negative, NaN, infinite, or unparseable.
    """
    try:
        amount = Decimal(str(major_units))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {major_units!r}") from exc

    if not amount.is_finite():
        raise ValidationError(f"Amount must be finite, got {major_units!r}")
    if amount < 0:
        raise ValidationError(f"Amount must be non-negative, got {major_units}")

    minor = int((amount * MINOR_UNITS_PER_MAJOR).to_integral_value(rounding=ROUND_HALF_UP))
    if minor > U64_MAX:
        raise ValidationError(f"Amount {major_units} exceeds the ledger's u64 range")
    return minor


def minor_units_argument(major_units: Decimal | int | str) -> str:
    """Encode a display amount as the decimal-string argument of a transaction."""
    return str(to_minor_units(major_units))


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


def decode_u64(value: object, *, field: str = "value") -> int:
    """Decode a u64 that the ledger may send as an int or a decimal string."""
    if isinstance(value, bool):
        raise DecodeError(f"{field}: expected u64, got bool", field=field)
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise DecodeError(f"{field}: expected u64, got {value!r}", field=field)
    if not 0 <= number <= U64_MAX:
        raise DecodeError(f"{field}: {number} outside u64 range", field=field)
    return number


def decode_amount(value: object, *, field: str) -> Decimal:
    """Decode a u64 minor-unit amount into major units."""
    return to_major_units(decode_u64(value, field=field))


def decode_rarity(value: object, *, field: str = "rarity") -> RarityTier:
    number = decode_u64(value, field=field)
    try:
        return RarityTier(number)
    except ValueError as exc:
        raise DecodeError(f"{field}: unknown rarity tier {number}", field=field) from exc


def decode_timestamp(value: object, *, field: str) -> datetime.datetime:
    """Decode a ledger timestamp in whole seconds since the epoch (UTC)."""
    seconds = decode_u64(value, field=field)
    try:
        return datetime.datetime.fromtimestamp(seconds, tz=datetime.UTC)
    except (OverflowError, OSError, ValueError) as exc:
        raise DecodeError(f"{field}: timestamp {seconds} out of range", field=field) from exc


def decode_optional_timestamp(value: object, *, field: str) -> datetime.datetime | None:
    """Like ``decode_timestamp`` but maps a missing or zero value to ``None``."""
    if value is None:
        return None
    if decode_u64(value, field=field) == 0:
        return None
    return decode_timestamp(value, field=field)


def decode_address(value: object, *, field: str) -> str:
    """Normalize an account address to lowercase ``0x``-prefixed hex."""
    if not isinstance(value, str) or not value.lower().startswith(_HEX_PREFIX):
        raise DecodeError(f"{field}: expected 0x-prefixed address, got {value!r}", field=field)
    digits = value[2:]
    if not digits or any(ch not in "0123456789abcdefABCDEF" for ch in digits):
        raise DecodeError(f"{field}: invalid address {value!r}", field=field)
    return _HEX_PREFIX + digits.lower()


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def decode_nft_record(raw: Mapping[str, object]) -> NFT:
    """Decode one NFT from the Marketplace resource.

    Raises:
        DecodeError: If a structural field (id, owner, price, rarity, ...) is bad.
    """
    record = _validate(RawNftRecord, raw, label="nft record")
    return _build_nft(record)


def decode_nft_details_response(values: list[object]) -> NFT:
    """Decode the positional ``get_nft_details`` result into an ``NFT``."""
    try:
        record = NftDetailsResponse.from_positional(values)
    except pydantic.ValidationError as exc:
        raise DecodeError(f"Malformed get_nft_details result: {exc}", field="get_nft_details") from exc
    return _build_nft(record)


def decode_auction_record(raw: Mapping[str, object]) -> Auction:
    """Decode one element of the ``get_all_auctions`` result.

    Raises:
        DecodeError: If the record is malformed or breaks the bid floor invariant.
    """
    record = _validate(RawAuctionRecord, raw, label="auction record")
    details = _build_details(record.nft_details) if record.nft_details is not None else None
    try:
        return Auction(
            id=decode_u64(record.id, field="id"),
            nft_id=decode_u64(record.nft_id, field="nft_id"),
            seller=decode_address(record.seller, field="seller"),
            starting_price=decode_amount(record.starting_price, field="starting_price"),
            current_bid=decode_amount(record.current_bid, field="current_bid"),
            highest_bidder=decode_address(record.highest_bidder, field="highest_bidder"),
            end_time=decode_timestamp(record.end_time, field="end_time"),
            nft=details,
        )
    except pydantic.ValidationError as exc:
        raise DecodeError(f"Auction record violates invariants: {exc}", field="auction") from exc


def decode_last_minted_response(values: list[object]) -> FusionResult:
    """Decode the positional ``get_last_minted_nft`` result."""
    try:
        record = LastMintedResponse.from_positional(values)
    except pydantic.ValidationError as exc:
        raise DecodeError(
            f"Malformed get_last_minted_nft result: {exc}", field="get_last_minted_nft"
        ) from exc
    return FusionResult(
        id=decode_u64(record.id, field="id"),
        name=decode_text_or_placeholder(record.name, field="name"),
        description=decode_text_or_placeholder(record.description, field="description"),
        media_uri=decode_text_or_placeholder(record.uri, field="uri"),
        rarity=decode_rarity(record.rarity),
    )


def _validate(schema: type[M], raw: object, *, label: str) -> M:
    try:
        return schema.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise DecodeError(f"Malformed {label}: {exc}", field=label) from exc


def _build_nft(record: RawNftRecord | NftDetailsResponse) -> NFT:
    nft_id = decode_u64(record.id, field="id")
    return NFT(
        id=nft_id,
        owner=decode_address(record.owner, field="owner"),
        name=decode_text_or_placeholder(record.name, field=f"nft {nft_id} name"),
        description=decode_text_or_placeholder(
            record.description, field=f"nft {nft_id} description"
        ),
        media_uri=decode_text_or_placeholder(record.uri, field=f"nft {nft_id} uri"),
        rarity=decode_rarity(record.rarity),
        price=decode_amount(record.price, field="price"),
        for_sale=record.for_sale,
        listed_at=decode_optional_timestamp(record.listed_at, field="listed_at"),
    )


def _build_details(details: RawNftDetails) -> NftDetails:
    return NftDetails(
        name=decode_text_or_placeholder(details.name, field="nft_details.name"),
        description=decode_text_or_placeholder(details.description, field="nft_details.description"),
        media_uri=decode_text_or_placeholder(details.uri, field="nft_details.uri"),
        rarity=decode_rarity(details.rarity, field="nft_details.rarity"),
    )
