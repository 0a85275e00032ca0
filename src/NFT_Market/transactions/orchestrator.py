"""Transaction orchestrator: the write path as an explicit state machine.

    IDLE -> BUILDING -> AWAITING_SIGNATURE -> SUBMITTED -> AWAITING_FINALITY
         -> CONFIRMED | FAILED -> IDLE

BUILDING checks local preconditions so that an intent known to be invalid is
never signed. AWAITING_SIGNATURE hands the intent to the wallet agent.
AWAITING_FINALITY waits on the gateway with no client-side deadline unless
one is configured. CONFIRMED refreshes every repository scope the operation
may have changed. FAILED leaves repositories alone, except after a chain
rejection, where the ledger may have moved under us and a refresh is due.

Only one operation is in flight per orchestrator; the next may start once
the previous one reached CONFIRMED or FAILED.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable
from typing import Final

from NFT_Market.ledger.gateway import LedgerGateway
from NFT_Market.ledger.wallet import WalletAgent
from NFT_Market.models.enums import FailureReason, TransactionState
from NFT_Market.models.market import FusionResult
from NFT_Market.models.transactions import (
    TransactionAttempt,
    TransactionHandle,
    TransactionReceipt,
)
from NFT_Market.repositories.auctions import AuctionsRepository, AuctionsScope
from NFT_Market.repositories.listings import ListingsRepository, ListingsScope
from NFT_Market.repositories.owned import OwnedNftsRepository
from NFT_Market.transactions.operations import (
    AuctionsTarget,
    FuseNfts,
    ListingsTarget,
    OwnedTarget,
    RefreshTarget,
    ValidationContext,
    WriteOperation,
)
from NFT_Market.utils.exceptions import (
    AgentError,
    ChainRejectedError,
    FinalityTimeoutError,
    MarketError,
    TransactionInProgressError,
    UserRejectedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_ALLOWED_TRANSITIONS: Final[dict[TransactionState, frozenset[TransactionState]]] = {
    TransactionState.IDLE: frozenset({TransactionState.BUILDING}),
    TransactionState.BUILDING: frozenset(
        {TransactionState.AWAITING_SIGNATURE, TransactionState.FAILED}
    ),
    TransactionState.AWAITING_SIGNATURE: frozenset(
        {TransactionState.SUBMITTED, TransactionState.FAILED}
    ),
    TransactionState.SUBMITTED: frozenset(
        {TransactionState.AWAITING_FINALITY, TransactionState.FAILED}
    ),
    TransactionState.AWAITING_FINALITY: frozenset(
        {TransactionState.CONFIRMED, TransactionState.FAILED}
    ),
    TransactionState.CONFIRMED: frozenset({TransactionState.IDLE}),
    TransactionState.FAILED: frozenset({TransactionState.IDLE}),
}

_TERMINAL_STATES: Final[frozenset[TransactionState]] = frozenset(
    {TransactionState.CONFIRMED, TransactionState.FAILED}
)

StateListener = Callable[[TransactionAttempt], None]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class TransactionOrchestrator:
    """Drives one write operation at a time from intent to refreshed state.

    Parameters
    ----------
    gateway:
        Ledger gateway used for the finality wait.
    wallet:
        Agent that signs and submits intents on behalf of the user.
    listings, auctions, owned:
        Repositories refreshed after a confirmed (or chain-rejected) write.
    clock:
        Source of "now" for precondition checks; defaults to UTC wall time.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        wallet: WalletAgent,
        *,
        listings: ListingsRepository,
        auctions: AuctionsRepository,
        owned: OwnedNftsRepository,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._gateway = gateway
        self._wallet = wallet
        self._listings = listings
        self._auctions = auctions
        self._owned = owned
        self._clock = clock or _utcnow
        self._marketplace = gateway.config.marketplace_address
        self._module_name = gateway.config.module_name

        self._state = TransactionState.IDLE
        self._current: WriteOperation | None = None
        self._history: list[TransactionAttempt] = []
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def history(self) -> tuple[TransactionAttempt, ...]:
        """Every state transition recorded so far, oldest first."""
        return tuple(self._history)

    @property
    def last_outcome(self) -> TransactionAttempt | None:
        """Terminal transition of the most recent operation, if any."""
        for attempt in reversed(self._history):
            if attempt.state in _TERMINAL_STATES:
                return attempt
        return None

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* on every transition; returns a function that unsubscribes."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def submit(self, operation: WriteOperation) -> TransactionReceipt:
        """Run *operation* through the full lifecycle.

        Returns:
            A receipt for the confirmed transaction.

        Raises:
            TransactionInProgressError: If another operation is still in flight.
            ValidationError: If a local precondition fails (nothing is sent).
            UserRejectedError: If the user declined to sign.
            AgentError: If the wallet agent failed.
            ChainRejectedError: If the ledger finalized the transaction as failed.
            FinalityTimeoutError: If the optional finality timeout elapsed.
            NetworkError: If finality could not be observed.
        """
        if self._state is not TransactionState.IDLE:
            in_flight = self._current.kind.value if self._current is not None else "unknown"
            raise TransactionInProgressError(
                f"Cannot submit {operation.kind.value}: {in_flight} is still {self._state.value}"
            )

        self._current = operation
        try:
            return await self._run(operation)
        finally:
            if self._state not in _TERMINAL_STATES:
                # Cancelled mid-flight; the ledger may still apply the transaction
                self._transition(TransactionState.FAILED, detail="cancelled")
            self._transition(TransactionState.IDLE)
            self._current = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _run(self, operation: WriteOperation) -> TransactionReceipt:
        sender = self._wallet.address

        # Building
        self._transition(TransactionState.BUILDING)
        try:
            operation.validate_preconditions(ValidationContext(sender=sender, now=self._clock()))
            intent = operation.build_intent(self._marketplace, self._module_name)
        except ValidationError as exc:
            self._fail(FailureReason.VALIDATION, str(exc))
            raise

        # Awaiting signature
        self._transition(TransactionState.AWAITING_SIGNATURE, detail=intent.function)
        try:
            handle = await self._wallet.sign_and_submit_transaction(intent)
        except UserRejectedError as exc:
            self._fail(FailureReason.USER_REJECTED, str(exc))
            raise
        except Exception as exc:  # noqa: BLE001
            self._fail(FailureReason.AGENT_ERROR, str(exc))
            raise AgentError(
                f"Wallet agent failed to submit {operation.kind.value}: {exc}",
                reason=FailureReason.AGENT_ERROR.value,
                source="wallet",
            ) from exc

        # Submitted -> awaiting finality
        self._transition(TransactionState.SUBMITTED, detail=handle.hash)
        self._transition(TransactionState.AWAITING_FINALITY, detail=handle.hash)
        try:
            status = await self._gateway.wait_for_transaction(handle)
        except FinalityTimeoutError as exc:
            self._fail(FailureReason.TIMEOUT, str(exc))
            raise
        except MarketError as exc:
            self._fail(FailureReason.NETWORK, str(exc))
            raise

        targets = operation.affected_targets(sender)
        if not status.success:
            self._fail(FailureReason.CHAIN_REJECTED, status.vm_status)
            await self._refresh_targets(targets)
            raise ChainRejectedError(
                f"{operation.kind.value} rejected by the ledger: {status.vm_status}",
                vm_status=status.vm_status,
                transaction_hash=handle.hash,
            )

        # Confirmed
        self._transition(TransactionState.CONFIRMED, detail=handle.hash)
        refresh_errors = await self._refresh_targets(targets)
        fusion_result = None
        if isinstance(operation, FuseNfts):
            fusion_result = await self._read_fusion_result(sender, handle, refresh_errors)

        return TransactionReceipt(
            kind=operation.kind,
            transaction_hash=handle.hash,
            refresh_errors=refresh_errors,
            fusion_result=fusion_result,
        )

    async def _refresh_targets(self, targets: list[RefreshTarget]) -> list[str]:
        """Refresh every scope behind *targets* concurrently; return failure messages."""
        refreshes = []
        labels: list[str] = []
        for target in targets:
            match target:
                case ListingsTarget():
                    refreshes.append(self._listings.refresh(ListingsScope(self._marketplace)))
                    labels.append("listings")
                case AuctionsTarget():
                    refreshes.append(self._auctions.refresh(AuctionsScope(self._marketplace)))
                    labels.append("auctions")
                case OwnedTarget(owner=owner):
                    for scope in self._owned.known_scopes():
                        if scope.owner.lower() == owner.lower():
                            refreshes.append(self._owned.refresh(scope))
                            labels.append(f"owned:{scope.owner}")

        results = await asyncio.gather(*refreshes, return_exceptions=True)
        errors: list[str] = []
        for label, result in zip(labels, results, strict=True):
            if isinstance(result, Exception):
                logger.warning("Post-transaction refresh of %s failed: %s", label, result)
                errors.append(f"{label}: {result}")
            elif isinstance(result, BaseException):
                raise result
        return errors

    async def _read_fusion_result(
        self,
        owner: str,
        handle: TransactionHandle,
        refresh_errors: list[str],
    ) -> FusionResult | None:
        try:
            result = await self._owned.fetch_last_minted(self._marketplace, owner)
        except MarketError as exc:
            logger.warning("Fusion %s confirmed but minted NFT unreadable: %s", handle.hash, exc)
            refresh_errors.append(f"fusion_result: {exc}")
            return None
        logger.info("Fusion %s minted NFT %d (%s)", handle.hash, result.id, result.rarity.label)
        return result

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _fail(self, reason: FailureReason, detail: str) -> None:
        self._transition(TransactionState.FAILED, reason=reason, detail=detail)

    def _transition(
        self,
        new_state: TransactionState,
        *,
        reason: FailureReason | None = None,
        detail: str = "",
    ) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self._state]:
            msg = f"Illegal transaction transition {self._state.value} -> {new_state.value}"
            raise RuntimeError(msg)

        self._state = new_state
        if self._current is None:
            return

        attempt = TransactionAttempt(
            kind=self._current.kind,
            state=new_state,
            at=datetime.datetime.now(datetime.UTC),
            reason=reason,
            detail=detail,
        )
        self._history.append(attempt)

        log = logger.warning if new_state is TransactionState.FAILED else logger.info
        log(
            "Transaction %s -> %s%s",
            attempt.kind.value,
            new_state.value,
            f" ({reason.value}: {detail})" if reason is not None else "",
        )

        for listener in list(self._listeners):
            try:
                listener(attempt)
            except Exception:
                logger.exception("Transaction state listener failed")
