"""Marketplace client: one object wiring the gateway, repositories and write path.

Usage::

    async with MarketplaceClient(load_config(), wallet=agent) as market:
        page = await market.market_view(ViewState())
        receipt = await market.purchase(page.items[0])
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from decimal import Decimal
from types import TracebackType

from NFT_Market.config import MarketConfig
from NFT_Market.ledger.gateway import LedgerGateway
from NFT_Market.ledger.wallet import WalletAgent
from NFT_Market.models.market import NFT, Auction, FusionRequest
from NFT_Market.models.query import QueryResult, ViewState
from NFT_Market.models.transactions import TransactionReceipt
from NFT_Market.query.engine import apply_view
from NFT_Market.repositories.auctions import AuctionsRepository, AuctionsScope
from NFT_Market.repositories.base import Snapshot
from NFT_Market.repositories.listings import ListingsRepository, ListingsScope
from NFT_Market.repositories.owned import OwnedNftsRepository, OwnedScope
from NFT_Market.services.health import HealthService
from NFT_Market.services.polling import PollingScheduler
from NFT_Market.transactions.operations import (
    CreateAuction,
    FuseNfts,
    ListForSale,
    PlaceBid,
    Purchase,
    WriteOperation,
)
from NFT_Market.transactions.orchestrator import TransactionOrchestrator
from NFT_Market.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


class MarketplaceClient:
    """Facade over every component needed to browse and trade on one marketplace.

    Reads work without a wallet; write methods raise ``ValidationError`` if
    no wallet agent was given.
    """

    def __init__(
        self,
        config: MarketConfig,
        wallet: WalletAgent | None = None,
        *,
        gateway: LedgerGateway | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._config = config
        self._wallet = wallet
        self._owns_gateway = gateway is None
        self._gateway = gateway or LedgerGateway(config)

        self.listings = ListingsRepository(self._gateway)
        self.auctions = AuctionsRepository(self._gateway)
        self.owned = OwnedNftsRepository(self._gateway)
        self.scheduler = PollingScheduler(config.poll_interval_seconds)
        self.health = HealthService(self._gateway)

        self._orchestrator: TransactionOrchestrator | None = None
        if wallet is not None:
            self._orchestrator = TransactionOrchestrator(
                self._gateway,
                wallet,
                listings=self.listings,
                auctions=self.auctions,
                owned=self.owned,
                clock=clock,
            )

    @property
    def config(self) -> MarketConfig:
        return self._config

    @property
    def gateway(self) -> LedgerGateway:
        return self._gateway

    @property
    def orchestrator(self) -> TransactionOrchestrator:
        if self._orchestrator is None:
            raise ValidationError("A wallet agent is required for write operations")
        return self._orchestrator

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    @property
    def listings_scope(self) -> ListingsScope:
        return ListingsScope(marketplace=self._config.marketplace_address)

    @property
    def auctions_scope(self) -> AuctionsScope:
        return AuctionsScope(marketplace=self._config.marketplace_address)

    def owned_scope(self, owner: str) -> OwnedScope:
        return self.owned.scope_for(self._config.marketplace_address, owner)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def market_view(self, view: ViewState, *, refresh: bool = True) -> QueryResult:
        """Return one page of the marketplace listing for *view*."""
        if refresh:
            snapshot = await self.listings.refresh(self.listings_scope)
        else:
            snapshot = self.listings.current_snapshot(self.listings_scope)
        return apply_view(snapshot.items, view)

    async def load_auctions(self) -> Snapshot[AuctionsScope, Auction]:
        return await self.auctions.refresh(self.auctions_scope)

    async def load_owned(self, owner: str) -> Snapshot[OwnedScope, NFT]:
        return await self.owned.refresh(self.owned_scope(owner))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def list_for_sale(self, nft: NFT, price: Decimal) -> TransactionReceipt:
        return await self._submit(ListForSale(nft=nft, price=price))

    async def purchase(self, nft: NFT) -> TransactionReceipt:
        return await self._submit(Purchase(nft=nft))

    async def create_auction(
        self,
        nft: NFT,
        starting_price: Decimal,
        end_time: datetime.datetime,
    ) -> TransactionReceipt:
        return await self._submit(
            CreateAuction(nft=nft, starting_price=starting_price, end_time=end_time)
        )

    async def place_bid(self, auction: Auction, amount: Decimal) -> TransactionReceipt:
        return await self._submit(PlaceBid(auction=auction, amount=amount))

    async def fuse(self, first_id: int, second_id: int) -> TransactionReceipt:
        """Fuse two NFTs of the wallet owner.

        Ownership and auction membership are checked against the current
        snapshots, loading them first if they were never fetched.
        """
        orchestrator = self.orchestrator
        if first_id == second_id:
            raise ValidationError("Fusion inputs must be distinct")
        owner = self._wallet.address if self._wallet is not None else ""

        owned = self.owned.current_snapshot(self.owned_scope(owner))
        if not owned.is_loaded:
            owned = await self.load_owned(owner)
        auctions = self.auctions.current_snapshot(self.auctions_scope)
        if not auctions.is_loaded:
            auctions = await self.load_auctions()

        operation = FuseNfts(
            request=FusionRequest(first_id=first_id, second_id=second_id),
            owned=owned.items,
            auctions=auctions.items,
        )
        return await orchestrator.submit(operation)

    async def _submit(self, operation: WriteOperation) -> TransactionReceipt:
        return await self.orchestrator.submit(operation)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Stop polling and close the gateway if this client created it."""
        await self.scheduler.shutdown()
        if self._owns_gateway:
            await self._gateway.aclose()

    async def __aenter__(self) -> MarketplaceClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()
