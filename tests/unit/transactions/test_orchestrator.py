"""Tests for TransactionOrchestrator: the write path state machine.

The wallet agent is an AsyncMock; the ledger is the in-memory fake node.

Covers:
- Local validation failures never reach the wallet or the network
- A confirmed bid refreshes auctions so current_bid/highest_bidder reflect it
- User rejection, agent failure, chain rejection and network failure paths
- Chain rejection refreshes affected scopes; other failures do not
- Only one operation in flight; the orchestrator returns to IDLE afterwards
- Listeners see every transition; a failing listener is contained
- Post-confirmation refresh failures are reported, fusion results read back
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from NFT_Market.ledger.gateway import LedgerGateway
from NFT_Market.models import (
    Auction,
    FailureReason,
    FusionRequest,
    TransactionAttempt,
    TransactionHandle,
    TransactionState,
)
from NFT_Market.repositories import (
    AuctionsRepository,
    AuctionsScope,
    ListingsRepository,
    OwnedNftsRepository,
    OwnedScope,
)
from NFT_Market.transactions import FuseNfts, PlaceBid, Purchase, TransactionOrchestrator
from NFT_Market.utils.exceptions import (
    AgentError,
    ChainRejectedError,
    NetworkError,
    TransactionInProgressError,
    UserRejectedError,
    ValidationError,
)

BIDDER = "0x" + "33" * 32
TX_HASH = "0x" + "ee" * 32
SUCCESS = {"type": "user_transaction", "success": True, "vm_status": "Executed successfully", "version": "9"}
ABORTED = {"type": "user_transaction", "success": False, "vm_status": "Move abort: E_BID_TOO_LOW"}


def _wallet(address: str, **kwargs: Any) -> MagicMock:
    wallet = MagicMock()
    wallet.address = address
    wallet.sign_and_submit_transaction = AsyncMock(
        return_value=TransactionHandle(hash=TX_HASH), **kwargs
    )
    return wallet


@pytest.fixture()
def repos(gateway: LedgerGateway) -> dict[str, Any]:
    return {
        "listings": ListingsRepository(gateway),
        "auctions": AuctionsRepository(gateway),
        "owned": OwnedNftsRepository(gateway),
    }


def _orchestrator(gateway: LedgerGateway, wallet: MagicMock, repos: dict[str, Any], ledger: Any) -> TransactionOrchestrator:
    return TransactionOrchestrator(gateway, wallet, clock=lambda: ledger.NOW, **repos)


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


class TestValidation:
    """Local precondition failures."""

    @pytest.mark.asyncio()
    async def test_equal_bid_rejected_before_wallet(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        wallet = _wallet(BIDDER)
        orchestrator = _orchestrator(gateway, wallet, repos, ledger)

        with pytest.raises(ValidationError):
            await orchestrator.submit(PlaceBid(auction=sample_auction, amount=Decimal("3.0")))

        wallet.sign_and_submit_transaction.assert_not_awaited()
        assert fake_node.requests == []
        assert orchestrator.state is TransactionState.IDLE
        assert orchestrator.last_outcome is not None
        assert orchestrator.last_outcome.reason is FailureReason.VALIDATION

    @pytest.mark.asyncio()
    async def test_same_fusion_inputs_rejected_before_wallet(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, make_nft: Any
    ) -> None:
        wallet = _wallet(ledger.OWNER)
        orchestrator = _orchestrator(gateway, wallet, repos, ledger)
        operation = FuseNfts(
            request=FusionRequest(first_id=5, second_id=5),
            owned=(make_nft(5, for_sale=False),),
        )

        with pytest.raises(ValidationError, match="Fusion inputs must be distinct"):
            await orchestrator.submit(operation)

        wallet.sign_and_submit_transaction.assert_not_awaited()
        assert fake_node.requests == []

    @pytest.mark.asyncio()
    async def test_bid_on_ended_auction_rejected_locally(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        ended = sample_auction.model_copy(update={"end_time": ledger.NOW})
        wallet = _wallet(BIDDER)
        orchestrator = _orchestrator(gateway, wallet, repos, ledger)

        with pytest.raises(ValidationError, match="has ended"):
            await orchestrator.submit(PlaceBid(auction=ended, amount=Decimal("100")))

        wallet.sign_and_submit_transaction.assert_not_awaited()
        assert fake_node.requests == []


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestConfirmed:
    """Confirmed transactions and their refreshes."""

    @pytest.mark.asyncio()
    async def test_confirmed_bid_is_reflected_after_refresh(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        fake_node.views["get_all_auctions"] = [[ledger.auction_record(1, current_minor=300_000_000)]]
        fake_node.transactions[TX_HASH] = [SUCCESS]

        async def submit(intent: Any) -> TransactionHandle:
            # The ledger applies the bid once the transaction is submitted
            fake_node.views["get_all_auctions"] = [
                [ledger.auction_record(1, current_minor=400_000_000, bidder=BIDDER)]
            ]
            return TransactionHandle(hash=TX_HASH)

        wallet = _wallet(BIDDER, side_effect=submit)
        orchestrator = _orchestrator(gateway, wallet, repos, ledger)

        receipt = await orchestrator.submit(PlaceBid(auction=sample_auction, amount=Decimal("4")))

        assert receipt.state is TransactionState.CONFIRMED
        assert receipt.transaction_hash == TX_HASH
        assert receipt.refresh_errors == []
        auction = repos["auctions"].current_snapshot(AuctionsScope(ledger.MARKETPLACE)).items[0]
        assert auction.current_bid == Decimal("4")
        assert auction.highest_bidder == BIDDER
        assert orchestrator.state is TransactionState.IDLE

    @pytest.mark.asyncio()
    async def test_intent_handed_to_wallet(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        fake_node.views["get_all_auctions"] = [[]]
        fake_node.transactions[TX_HASH] = [SUCCESS]
        wallet = _wallet(BIDDER)

        await _orchestrator(gateway, wallet, repos, ledger).submit(
            PlaceBid(auction=sample_auction, amount=Decimal("3.5"))
        )

        intent = wallet.sign_and_submit_transaction.await_args.args[0]
        assert intent.to_payload() == {
            "type": "entry_function_payload",
            "function": f"{ledger.MARKETPLACE}::NFTMarketplace::place_bid",
            "type_arguments": [],
            "arguments": [ledger.MARKETPLACE, "1", "350000000"],
        }

    @pytest.mark.asyncio()
    async def test_listener_sees_every_transition(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        fake_node.views["get_all_auctions"] = [[]]
        fake_node.transactions[TX_HASH] = [None, SUCCESS]
        orchestrator = _orchestrator(gateway, _wallet(BIDDER), repos, ledger)

        seen: list[TransactionState] = []

        def listener(attempt: TransactionAttempt) -> None:
            seen.append(attempt.state)

        def broken(attempt: TransactionAttempt) -> None:
            raise RuntimeError("listener bug")

        orchestrator.add_listener(broken)
        remove = orchestrator.add_listener(listener)

        await orchestrator.submit(PlaceBid(auction=sample_auction, amount=Decimal("5")))

        assert seen == [
            TransactionState.BUILDING,
            TransactionState.AWAITING_SIGNATURE,
            TransactionState.SUBMITTED,
            TransactionState.AWAITING_FINALITY,
            TransactionState.CONFIRMED,
            TransactionState.IDLE,
        ]
        remove()
        assert len(orchestrator.history) == 6

    @pytest.mark.asyncio()
    async def test_refresh_failure_reported_not_raised(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        fake_node.transactions[TX_HASH] = [SUCCESS]
        # No get_all_auctions view registered: the refresh read is rejected
        receipt = await _orchestrator(gateway, _wallet(BIDDER), repos, ledger).submit(
            PlaceBid(auction=sample_auction, amount=Decimal("5"))
        )

        assert receipt.state is TransactionState.CONFIRMED
        assert len(receipt.refresh_errors) == 1
        assert receipt.refresh_errors[0].startswith("auctions:")

    @pytest.mark.asyncio()
    async def test_purchase_refreshes_known_owned_scopes(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, make_nft: Any
    ) -> None:
        fake_node.resources[ledger.resource_type()] = {"nfts": []}
        fake_node.views["get_all_nfts_for_owner"] = [[]]
        fake_node.transactions[TX_HASH] = [SUCCESS]
        owned: OwnedNftsRepository = repos["owned"]
        await owned.refresh(OwnedScope(ledger.MARKETPLACE, ledger.BUYER))
        await owned.refresh(OwnedScope(ledger.MARKETPLACE, ledger.OWNER))

        await _orchestrator(gateway, _wallet(ledger.BUYER), repos, ledger).submit(
            Purchase(nft=make_nft(3))
        )

        assert owned.read_batches == 4
        assert repos["listings"].read_batches == 1

    @pytest.mark.asyncio()
    async def test_fusion_reads_back_minted_nft(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, make_nft: Any
    ) -> None:
        fake_node.transactions[TX_HASH] = [SUCCESS]
        fake_node.views["get_last_minted_nft"] = [
            "40",
            ledger.hex_text("Chimera"),
            ledger.hex_text("fused"),
            ledger.hex_text("ipfs://40"),
            "4",
        ]
        operation = FuseNfts(
            request=FusionRequest(first_id=5, second_id=6),
            owned=(make_nft(5, for_sale=False), make_nft(6, for_sale=False)),
        )

        receipt = await _orchestrator(gateway, _wallet(ledger.OWNER), repos, ledger).submit(operation)

        assert receipt.fusion_result is not None
        assert receipt.fusion_result.id == 40
        assert receipt.fusion_result.name == "Chimera"


# ---------------------------------------------------------------------------
# Failure paths
# ---------------------------------------------------------------------------


class TestFailures:
    """Failures after the building phase."""

    @pytest.mark.asyncio()
    async def test_user_rejection(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        wallet = _wallet(BIDDER, side_effect=UserRejectedError())
        orchestrator = _orchestrator(gateway, wallet, repos, ledger)

        with pytest.raises(UserRejectedError):
            await orchestrator.submit(PlaceBid(auction=sample_auction, amount=Decimal("5")))

        assert orchestrator.state is TransactionState.IDLE
        assert orchestrator.last_outcome is not None
        assert orchestrator.last_outcome.reason is FailureReason.USER_REJECTED
        assert repos["auctions"].read_batches == 0
        assert fake_node.requests == []

    @pytest.mark.asyncio()
    async def test_agent_failure_is_wrapped(
        self, gateway: LedgerGateway, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        original = ConnectionResetError("extension crashed")
        wallet = _wallet(BIDDER, side_effect=original)
        orchestrator = _orchestrator(gateway, wallet, repos, ledger)

        with pytest.raises(AgentError) as exc_info:
            await orchestrator.submit(PlaceBid(auction=sample_auction, amount=Decimal("5")))

        assert exc_info.value.reason == "agent_error"
        assert exc_info.value.__cause__ is original
        assert orchestrator.last_outcome is not None
        assert orchestrator.last_outcome.reason is FailureReason.AGENT_ERROR

    @pytest.mark.asyncio()
    async def test_chain_rejection_refreshes_anyway(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        fake_node.views["get_all_auctions"] = [[ledger.auction_record(1, current_minor=600_000_000)]]
        fake_node.transactions[TX_HASH] = [ABORTED]
        orchestrator = _orchestrator(gateway, _wallet(BIDDER), repos, ledger)

        with pytest.raises(ChainRejectedError) as exc_info:
            await orchestrator.submit(PlaceBid(auction=sample_auction, amount=Decimal("5")))

        assert "E_BID_TOO_LOW" in exc_info.value.vm_status
        assert exc_info.value.transaction_hash == TX_HASH
        snapshot = repos["auctions"].current_snapshot(AuctionsScope(ledger.MARKETPLACE))
        assert snapshot.items[0].current_bid == Decimal("6")
        assert orchestrator.last_outcome is not None
        assert orchestrator.last_outcome.reason is FailureReason.CHAIN_REJECTED

    @pytest.mark.asyncio()
    async def test_network_failure_during_finality(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        fake_node.fail_status = 503
        orchestrator = _orchestrator(gateway, _wallet(BIDDER), repos, ledger)

        with pytest.raises(NetworkError):
            await orchestrator.submit(PlaceBid(auction=sample_auction, amount=Decimal("5")))

        assert orchestrator.last_outcome is not None
        assert orchestrator.last_outcome.reason is FailureReason.NETWORK
        assert repos["auctions"].read_batches == 0
        assert orchestrator.state is TransactionState.IDLE

    @pytest.mark.asyncio()
    async def test_retry_after_failure(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        wallet = _wallet(BIDDER, side_effect=[UserRejectedError(), TransactionHandle(hash=TX_HASH)])
        fake_node.views["get_all_auctions"] = [[]]
        fake_node.transactions[TX_HASH] = [SUCCESS]
        orchestrator = _orchestrator(gateway, wallet, repos, ledger)
        operation = PlaceBid(auction=sample_auction, amount=Decimal("5"))

        with pytest.raises(UserRejectedError):
            await orchestrator.submit(operation)
        receipt = await orchestrator.submit(operation)

        assert receipt.state is TransactionState.CONFIRMED


class TestSingleInFlight:
    """Only one operation may be in flight."""

    @pytest.mark.asyncio()
    async def test_second_submission_rejected(
        self, gateway: LedgerGateway, fake_node: Any, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        release = asyncio.Event()

        async def slow_sign(intent: Any) -> TransactionHandle:
            await release.wait()
            return TransactionHandle(hash=TX_HASH)

        fake_node.views["get_all_auctions"] = [[]]
        fake_node.transactions[TX_HASH] = [SUCCESS]
        orchestrator = _orchestrator(gateway, _wallet(BIDDER, side_effect=slow_sign), repos, ledger)
        operation = PlaceBid(auction=sample_auction, amount=Decimal("5"))

        first = asyncio.create_task(orchestrator.submit(operation))
        await asyncio.sleep(0)
        assert orchestrator.state is TransactionState.AWAITING_SIGNATURE

        with pytest.raises(TransactionInProgressError):
            await orchestrator.submit(operation)

        release.set()
        receipt = await first
        assert receipt.state is TransactionState.CONFIRMED
        assert orchestrator.state is TransactionState.IDLE

    @pytest.mark.asyncio()
    async def test_cancellation_returns_to_idle(
        self, gateway: LedgerGateway, repos: dict[str, Any], ledger: Any, sample_auction: Auction
    ) -> None:
        async def never(intent: Any) -> TransactionHandle:
            await asyncio.Event().wait()
            raise AssertionError("unreachable")

        orchestrator = _orchestrator(gateway, _wallet(BIDDER, side_effect=never), repos, ledger)
        task = asyncio.create_task(
            orchestrator.submit(PlaceBid(auction=sample_auction, amount=Decimal("5")))
        )
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert orchestrator.state is TransactionState.IDLE
        assert orchestrator.last_outcome is not None
        assert orchestrator.last_outcome.state is TransactionState.FAILED
