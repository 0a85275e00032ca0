"""Marketplace listings: NFTs currently offered for sale."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from NFT_Market.ledger.codec import decode_nft_record
from NFT_Market.ledger.gateway import LedgerGateway
from NFT_Market.ledger.schemas import MARKETPLACE_RESOURCE, module_function_id
from NFT_Market.models.market import NFT
from NFT_Market.repositories.base import SnapshotRepository
from NFT_Market.utils.exceptions import DecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListingsScope:
    """Every for-sale NFT of the marketplace stored under *marketplace*."""

    marketplace: str


class ListingsRepository(SnapshotRepository[ListingsScope, NFT]):
    """Reads the Marketplace resource and keeps the NFTs flagged for sale.

    A record that fails to decode is logged and skipped; the rest of the
    listing is still published.
    """

    kind = "listings"

    def __init__(self, gateway: LedgerGateway) -> None:
        super().__init__()
        self._gateway = gateway

    async def _fetch(self, scope: ListingsScope) -> list[NFT]:
        config = self._gateway.config
        resource_type = module_function_id(
            scope.marketplace, config.module_name, MARKETPLACE_RESOURCE
        )
        data = await self._gateway.get_account_resource(scope.marketplace, resource_type)

        raw_nfts = data.get("nfts")
        if not isinstance(raw_nfts, list):
            raise DecodeError("Marketplace resource has no 'nfts' list", field="nfts")

        listings: list[NFT] = []
        skipped = 0
        for index, raw in enumerate(raw_nfts):
            try:
                nft = decode_nft_record(raw)
            except DecodeError as exc:
                skipped += 1
                logger.warning("Skipping malformed marketplace record #%d: %s", index, exc)
                continue
            if nft.for_sale:
                listings.append(nft)

        if skipped:
            logger.info("Listings decoded with %d malformed records skipped", skipped)
        return listings
