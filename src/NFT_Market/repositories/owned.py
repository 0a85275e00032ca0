"""Owned NFTs: one page of an owner's token ids, expanded into full details.

The id page comes from ``get_all_nfts_for_owner``; the details of every id
are then fetched concurrently with ``get_nft_details``. The collection is
best-effort: an id whose detail fetch or decode fails is logged and left out
instead of failing the whole refresh.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Final

from NFT_Market.ledger.codec import (
    decode_last_minted_response,
    decode_nft_details_response,
    decode_u64,
)
from NFT_Market.ledger.gateway import LedgerGateway
from NFT_Market.ledger.schemas import (
    VIEW_GET_LAST_MINTED,
    VIEW_GET_NFT_DETAILS,
    VIEW_GET_NFTS_FOR_OWNER,
    module_function_id,
)
from NFT_Market.models.market import NFT, FusionResult
from NFT_Market.repositories.base import SnapshotRepository
from NFT_Market.utils.exceptions import DecodeError, MarketError, NetworkError

logger = logging.getLogger(__name__)

DEFAULT_OWNER_PAGE_LIMIT: Final[int] = 100


@dataclass(frozen=True)
class OwnedScope:
    """NFTs of *owner* in marketplace *marketplace*, one id page at a time."""

    marketplace: str
    owner: str
    limit: int = DEFAULT_OWNER_PAGE_LIMIT
    offset: int = 0


class OwnedNftsRepository(SnapshotRepository[OwnedScope, NFT]):
    """Loads the NFTs held by one account."""

    kind = "owned_nfts"

    def __init__(self, gateway: LedgerGateway) -> None:
        super().__init__()
        self._gateway = gateway

    def scope_for(self, marketplace: str, owner: str) -> OwnedScope:
        """First id page of *owner* sized by the configured page limit."""
        return OwnedScope(
            marketplace=marketplace,
            owner=owner,
            limit=self._gateway.config.owner_page_limit,
        )

    async def fetch_owned_ids(self, scope: OwnedScope) -> list[int]:
        """Return the token ids in the requested page of *scope.owner*'s holdings."""
        result = await self._gateway.view(
            self._function(scope.marketplace, VIEW_GET_NFTS_FOR_OWNER),
            [],
            [scope.marketplace, scope.owner, str(scope.limit), str(scope.offset)],
        )
        # Some nodes wrap the vector as the first return value, some do not
        raw_ids = result[0] if result and isinstance(result[0], list) else result

        ids: list[int] = []
        for raw_id in raw_ids:
            try:
                ids.append(decode_u64(raw_id, field="nft_id"))
            except DecodeError as exc:
                logger.warning("Skipping undecodable NFT id for %s: %s", scope.owner, exc)
        return ids

    async def fetch_nft(self, marketplace: str, nft_id: int) -> NFT:
        """Fetch and decode the details of a single NFT."""
        result = await self._gateway.view(
            self._function(marketplace, VIEW_GET_NFT_DETAILS),
            [],
            [marketplace, str(nft_id)],
        )
        return decode_nft_details_response(result)

    async def fetch_last_minted(self, marketplace: str, owner: str) -> FusionResult:
        """Read back the NFT most recently minted for *owner* (e.g. by a fusion)."""
        result = await self._gateway.view(
            self._function(marketplace, VIEW_GET_LAST_MINTED),
            [],
            [marketplace, owner],
        )
        return decode_last_minted_response(result)

    async def _fetch(self, scope: OwnedScope) -> list[NFT]:
        ids = await self.fetch_owned_ids(scope)
        if not ids:
            logger.info("No NFTs found for owner %s", scope.owner)
            return []

        logger.debug("Fetching details for %d NFTs of %s", len(ids), scope.owner)
        results = await asyncio.gather(
            *(self.fetch_nft(scope.marketplace, nft_id) for nft_id in ids),
            return_exceptions=True,
        )

        nfts: list[NFT] = []
        network_failures = 0
        for nft_id, result in zip(ids, results, strict=True):
            if isinstance(result, MarketError):
                if isinstance(result, NetworkError):
                    network_failures += 1
                logger.warning("Dropping NFT %d of %s: %s", nft_id, scope.owner, result)
            elif isinstance(result, BaseException):
                raise result
            else:
                nfts.append(result)

        # Nothing came back because the node is down: keep the stale snapshot
        if network_failures == len(ids):
            raise NetworkError(
                f"All {len(ids)} detail fetches for {scope.owner} failed",
                source="owned_nfts",
            )

        dropped = len(ids) - len(nfts)
        logger.info(
            "Owned NFTs for %s: %d fetched, %d dropped",
            scope.owner,
            len(nfts),
            dropped,
        )
        return nfts

    def _function(self, marketplace: str, name: str) -> str:
        return module_function_id(marketplace, self._gateway.config.module_name, name)
