"""Shared test fixtures for the NFT Market test suite.

Provides realistic sample entities, raw ledger payloads, and an in-memory
ledger node served through ``httpx.MockTransport`` so tests never touch a
real fullnode.
"""

from __future__ import annotations

import datetime
import json
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import httpx
import pytest

from NFT_Market.config import MarketConfig
from NFT_Market.ledger.gateway import LedgerGateway
from NFT_Market.models import NFT, Auction, NftDetails, RarityTier
from NFT_Market.services.rate_limiter import RateLimiter

MARKETPLACE = "0x" + "ab" * 32
OWNER = "0x" + "11" * 32
BUYER = "0x" + "22" * 32
NODE_URL = "https://node.test/v1"

NOW = datetime.datetime(2025, 3, 1, 12, 0, 0, tzinfo=datetime.UTC)


def hex_text(text: str) -> str:
    """Encode *text* the way the ledger returns byte vectors."""
    return "0x" + text.encode("utf-8").hex()


# ---------------------------------------------------------------------------
# In-memory ledger node
# ---------------------------------------------------------------------------


class FakeNode:
    """Routes gateway requests to canned responses.

    ``views`` maps a view function name to either a result list or a callable
    taking the call arguments. ``transactions`` maps a hash to the sequence of
    responses returned by successive polls (``None`` means 404).
    """

    def __init__(self) -> None:
        self.resources: dict[str, dict[str, Any]] = {}
        self.views: dict[str, Any] = {}
        self.transactions: dict[str, list[dict[str, Any] | None]] = {}
        self.ledger_info: dict[str, Any] = {
            "chain_id": 2,
            "ledger_version": "123456",
            "ledger_timestamp": "1740830400000000",
        }
        self.fail_status: int | None = None
        self.requests: list[httpx.Request] = []

    def view_calls(self, name: str) -> list[list[str]]:
        """Arguments of every recorded call to view *name*."""
        calls = []
        for request in self.requests:
            if request.url.path.endswith("/view"):
                body = json.loads(request.content)
                if body["function"].rsplit("::", 1)[-1] == name:
                    calls.append(body["arguments"])
        return calls

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"message": "node unavailable"})

        path = request.url.path.removeprefix("/v1")
        if request.method == "POST" and path == "/view":
            body = json.loads(request.content)
            name = body["function"].rsplit("::", 1)[-1]
            if name not in self.views:
                return httpx.Response(400, json={"message": f"unknown view {name}"})
            value = self.views[name]
            result = value(body["arguments"]) if callable(value) else value
            if isinstance(result, httpx.Response):
                return result
            return httpx.Response(200, json=result)

        if request.method == "GET" and "/resource/" in path:
            resource_type = path.split("/resource/", 1)[1]
            if resource_type not in self.resources:
                return httpx.Response(404, json={"message": "resource not found"})
            return httpx.Response(
                200, json={"type": resource_type, "data": self.resources[resource_type]}
            )

        if request.method == "GET" and path.startswith("/transactions/by_hash/"):
            tx_hash = path.rsplit("/", 1)[1]
            responses = self.transactions.get(tx_hash, [])
            payload = responses.pop(0) if len(responses) > 1 else (responses[0] if responses else None)
            if payload is None:
                return httpx.Response(404, json={"message": "transaction not found"})
            return httpx.Response(200, json=payload)

        if request.method == "GET" and path in {"", "/"}:
            return httpx.Response(200, json=self.ledger_info)

        return httpx.Response(404, json={"message": f"no route for {path}"})


# ---------------------------------------------------------------------------
# Raw payload builders
# ---------------------------------------------------------------------------


def raw_nft_record(
    nft_id: int,
    *,
    owner: str = OWNER,
    name: str = "Token",
    description: str = "A token",
    price_minor: int = 100_000_000,
    for_sale: bool = True,
    rarity: int = 1,
    listed_at: int = 1_740_000_000,
) -> dict[str, Any]:
    """One NFT as stored in the Marketplace resource."""
    return {
        "id": str(nft_id),
        "owner": owner,
        "name": hex_text(name),
        "description": hex_text(description),
        "uri": hex_text(f"ipfs://token/{nft_id}"),
        "price": str(price_minor),
        "for_sale": for_sale,
        "rarity": str(rarity),
        "listed_at": str(listed_at),
    }


def raw_nft_details(
    nft_id: int,
    *,
    owner: str = OWNER,
    name: str = "Token",
    price_minor: int = 100_000_000,
    for_sale: bool = False,
    rarity: int = 2,
) -> list[Any]:
    """Positional ``get_nft_details`` result."""
    return [
        str(nft_id),
        owner,
        hex_text(name),
        hex_text("details"),
        hex_text(f"ipfs://token/{nft_id}"),
        str(price_minor),
        for_sale,
        str(rarity),
    ]


def raw_auction_record(
    auction_id: int,
    *,
    nft_id: int = 7,
    seller: str = OWNER,
    starting_minor: int = 100_000_000,
    current_minor: int = 300_000_000,
    bidder: str = BUYER,
    end_time: int = 1_900_000_000,
) -> dict[str, Any]:
    """One element of the ``get_all_auctions`` vector."""
    return {
        "id": str(auction_id),
        "nft_id": str(nft_id),
        "seller": seller,
        "starting_price": str(starting_minor),
        "current_bid": str(current_minor),
        "highest_bidder": bidder,
        "end_time": str(end_time),
        "nft_details": {
            "name": hex_text(f"Auctioned {nft_id}"),
            "description": hex_text("up for auction"),
            "uri": hex_text(f"ipfs://token/{nft_id}"),
            "rarity": "3",
        },
    }


class Ledger:
    """Addresses, clock and payload builders shared by tests via the ``ledger`` fixture."""

    MARKETPLACE = MARKETPLACE
    OWNER = OWNER
    BUYER = BUYER
    NOW = NOW

    hex_text = staticmethod(hex_text)
    nft_record = staticmethod(raw_nft_record)
    nft_details = staticmethod(raw_nft_details)
    auction_record = staticmethod(raw_auction_record)

    @staticmethod
    def resource_type(module_name: str = "NFTMarketplace") -> str:
        return f"{MARKETPLACE}::{module_name}::Marketplace"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def ledger() -> type[Ledger]:
    return Ledger


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    """Retry reads without sleeping between attempts."""
    monkeypatch.setattr("NFT_Market.ledger._retry.BACKOFF_DELAYS", [0.0, 0.0, 0.0])


@pytest.fixture()
def market_config() -> MarketConfig:
    """Config pointing at the fake node with fast finality polling."""
    return MarketConfig(
        node_url=NODE_URL,
        marketplace_address=MARKETPLACE,
        finality_poll_interval_seconds=0.01,
        poll_interval_seconds=0.05,
    )


@pytest.fixture()
def fake_node() -> FakeNode:
    return FakeNode()


@pytest.fixture()
def gateway(market_config: MarketConfig, fake_node: FakeNode) -> LedgerGateway:
    """A real gateway talking to ``fake_node`` through ``httpx.MockTransport``."""
    client = httpx.AsyncClient(
        base_url=NODE_URL,
        transport=httpx.MockTransport(fake_node.handler),
    )
    return LedgerGateway(
        market_config,
        client=client,
        rate_limiter=RateLimiter(max_concurrent=50, requests_per_second=10_000.0),
    )


@pytest.fixture()
def make_nft() -> Callable[..., NFT]:
    """Factory for decoded NFTs with sensible defaults."""

    def _make(
        nft_id: int,
        *,
        owner: str = OWNER,
        price: str = "1.5",
        rarity: RarityTier = RarityTier.COMMON,
        for_sale: bool = True,
        listed_at: datetime.datetime | None = NOW,
        name: str | None = None,
        description: str = "",
    ) -> NFT:
        return NFT(
            id=nft_id,
            owner=owner,
            name=name if name is not None else f"Token {nft_id}",
            description=description,
            media_uri=f"ipfs://token/{nft_id}",
            rarity=rarity,
            price=Decimal(price),
            for_sale=for_sale,
            listed_at=listed_at,
        )

    return _make


@pytest.fixture()
def sample_auction() -> Auction:
    """A running auction of NFT 7 with a current bid of 3.0."""
    return Auction(
        id=1,
        nft_id=7,
        seller=OWNER,
        starting_price=Decimal("1.0"),
        current_bid=Decimal("3.0"),
        highest_bidder=BUYER,
        end_time=NOW + datetime.timedelta(hours=1),
        nft=NftDetails(
            name="Auctioned 7",
            description="up for auction",
            media_uri="ipfs://token/7",
            rarity=RarityTier.RARE,
        ),
    )
