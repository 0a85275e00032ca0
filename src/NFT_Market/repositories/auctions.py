"""Auctions: every auction recorded by the marketplace module."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from NFT_Market.ledger.codec import decode_auction_record
from NFT_Market.ledger.gateway import LedgerGateway
from NFT_Market.ledger.schemas import VIEW_GET_ALL_AUCTIONS, module_function_id
from NFT_Market.models.market import Auction
from NFT_Market.repositories.base import SnapshotRepository
from NFT_Market.utils.exceptions import DecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuctionsScope:
    """All auctions of the marketplace stored under *marketplace*."""

    marketplace: str


class AuctionsRepository(SnapshotRepository[AuctionsScope, Auction]):
    """Loads auctions with a single ``get_all_auctions`` view call."""

    kind = "auctions"

    def __init__(self, gateway: LedgerGateway) -> None:
        super().__init__()
        self._gateway = gateway

    async def _fetch(self, scope: AuctionsScope) -> list[Auction]:
        function_id = module_function_id(
            scope.marketplace, self._gateway.config.module_name, VIEW_GET_ALL_AUCTIONS
        )
        result = await self._gateway.view(function_id, [], [])

        # The view returns a single vector<Auction> as its first value
        if not result:
            return []
        raw_auctions = result[0]
        if not isinstance(raw_auctions, list):
            raise DecodeError(
                f"get_all_auctions returned {type(raw_auctions).__name__}, expected a list",
                field=VIEW_GET_ALL_AUCTIONS,
            )

        auctions: list[Auction] = []
        for index, raw in enumerate(raw_auctions):
            try:
                auctions.append(decode_auction_record(raw))
            except DecodeError as exc:
                logger.warning("Skipping malformed auction record #%d: %s", index, exc)
        return auctions
