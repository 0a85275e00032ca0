"""Query models: filter predicates, view state, and paged results."""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from NFT_Market.models.enums import RarityTier, SortOrder
from NFT_Market.models.market import NFT

DEFAULT_PAGE_SIZE: int = 8


class QueryFilters(BaseModel):
    """Independent predicates combined with logical AND.

    A ``None`` field disables that predicate. Ranges are inclusive on both ends.
    """

    model_config = ConfigDict(frozen=True)

    rarity: RarityTier | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    listed_from: datetime.datetime | None = None
    listed_to: datetime.datetime | None = None
    search: str | None = None


class ViewState(BaseModel):
    """What the marketplace view currently shows.

    Changing filters or sort always returns to page 1 so the view never
    lands on an empty tail page.
    """

    model_config = ConfigDict(frozen=True)

    filters: QueryFilters = Field(default_factory=QueryFilters)
    sort: SortOrder = SortOrder.PRICE_ASC
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)

    def with_filters(self, filters: QueryFilters) -> "ViewState":
        return self.model_copy(update={"filters": filters, "page": 1})

    def with_sort(self, sort: SortOrder) -> "ViewState":
        return self.model_copy(update={"sort": sort, "page": 1})

    def with_page(self, page: int) -> "ViewState":
        return ViewState(
            filters=self.filters,
            sort=self.sort,
            page=page,
            page_size=self.page_size,
        )


class QueryResult(BaseModel):
    """One page of the filtered, sorted snapshot.

    ``total_count`` is the filtered count, never the unfiltered snapshot size.
    """

    model_config = ConfigDict(frozen=True)

    items: tuple[NFT, ...]
    total_count: int
    page: int
    page_size: int

    @property
    def page_count(self) -> int:
        """Number of pages needed to show ``total_count`` items."""
        return -(-self.total_count // self.page_size)
