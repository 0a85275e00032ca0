"""Filter, sort, and paginate a repository snapshot into the rendered view.

Everything here is a pure function of its inputs: the same snapshot and the
same parameters always produce the same page, which keeps pagination
reproducible across polls.
"""

from __future__ import annotations

import datetime
from collections.abc import Callable, Iterable, Sequence
from decimal import Decimal
from typing import Final, TypeVar

from NFT_Market.models.enums import SortOrder
from NFT_Market.models.market import NFT
from NFT_Market.models.query import DEFAULT_PAGE_SIZE, QueryFilters, QueryResult, ViewState
from NFT_Market.utils.exceptions import ValidationError

# NFTs without a listing time sort as the oldest
_EPOCH: Final[datetime.datetime] = datetime.datetime.min.replace(tzinfo=datetime.UTC)

Predicate = Callable[[NFT], bool]

T = TypeVar("T")


def build_predicates(filters: QueryFilters) -> list[Predicate]:
    """Translate *filters* into independent predicates (combined with AND)."""
    predicates: list[Predicate] = []

    if filters.rarity is not None:
        rarity = filters.rarity
        predicates.append(lambda nft: nft.rarity == rarity)

    if filters.min_price is not None:
        min_price = Decimal(filters.min_price)
        predicates.append(lambda nft: nft.price >= min_price)

    if filters.max_price is not None:
        max_price = Decimal(filters.max_price)
        predicates.append(lambda nft: nft.price <= max_price)

    if filters.listed_from is not None:
        listed_from = _as_utc(filters.listed_from)
        predicates.append(lambda nft: nft.listed_at is not None and nft.listed_at >= listed_from)

    if filters.listed_to is not None:
        listed_to = _as_utc(filters.listed_to)
        predicates.append(lambda nft: nft.listed_at is not None and nft.listed_at <= listed_to)

    if filters.search:
        term = filters.search.casefold()
        predicates.append(
            lambda nft: term in nft.name.casefold() or term in nft.description.casefold()
        )

    return predicates


def filter_items(items: Iterable[NFT], filters: QueryFilters) -> list[NFT]:
    predicates = build_predicates(filters)
    return [nft for nft in items if all(predicate(nft) for predicate in predicates)]


def sort_items(items: Iterable[NFT], order: SortOrder) -> list[NFT]:
    """Sort by *order*, breaking ties by ascending id.

    Uses two stable passes: first by id, then by the primary key (reversed
    for descending orders) so that ties always stay in ascending id order.
    """
    by_id = sorted(items, key=lambda nft: nft.id)

    match order:
        case SortOrder.PRICE_ASC:
            return sorted(by_id, key=lambda nft: nft.price)
        case SortOrder.PRICE_DESC:
            return sorted(by_id, key=lambda nft: nft.price, reverse=True)
        case SortOrder.DATE_ASC:
            return sorted(by_id, key=_listed_key)
        case SortOrder.DATE_DESC:
            return sorted(by_id, key=_listed_key, reverse=True)
        case SortOrder.RARITY_ASC:
            return sorted(by_id, key=lambda nft: int(nft.rarity))
        case SortOrder.RARITY_DESC:
            return sorted(by_id, key=lambda nft: int(nft.rarity), reverse=True)
        case _:
            raise ValidationError(f"Unknown sort order: {order!r}")


def paginate(items: Sequence[T], page: int, page_size: int = DEFAULT_PAGE_SIZE) -> tuple[T, ...]:
    """Return the 1-indexed *page* of *items*; past the end yields an empty tuple.

    Raises:
        ValidationError: If *page* or *page_size* is below 1.
    """
    if page < 1:
        raise ValidationError(f"Page must be >= 1, got {page}")
    if page_size < 1:
        raise ValidationError(f"Page size must be >= 1, got {page_size}")
    start = (page - 1) * page_size
    return tuple(items[start : start + page_size])


def apply_query(
    items: Iterable[NFT],
    filters: QueryFilters,
    sort: SortOrder,
    page: int,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> QueryResult:
    """Filter, sort, and slice *items* into one page.

    Returns:
        The page items and the filtered total count.
    """
    matched = sort_items(filter_items(items, filters), sort)
    return QueryResult(
        items=paginate(matched, page, page_size),
        total_count=len(matched),
        page=page,
        page_size=page_size,
    )


def apply_view(items: Iterable[NFT], view: ViewState) -> QueryResult:
    """Shorthand for ``apply_query`` driven by a ``ViewState``."""
    return apply_query(items, view.filters, view.sort, view.page, view.page_size)


def _listed_key(nft: NFT) -> datetime.datetime:
    return nft.listed_at if nft.listed_at is not None else _EPOCH


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    """Treat naive datetimes as UTC so they compare with ledger timestamps."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value
