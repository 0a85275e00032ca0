"""Query engine: stateless filter/sort/paginate over repository snapshots."""

from NFT_Market.query.engine import (
    apply_query,
    apply_view,
    filter_items,
    paginate,
    sort_items,
)

__all__ = [
    "apply_query",
    "apply_view",
    "filter_items",
    "paginate",
    "sort_items",
]
