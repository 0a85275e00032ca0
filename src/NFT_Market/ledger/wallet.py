"""Wallet agent contract.

The client never holds key material. Signing and submission are delegated
to whatever wallet the host environment provides (browser extension bridge,
hardware signer, test double), as long as it satisfies ``WalletAgent``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from NFT_Market.models.transactions import TransactionHandle, TransactionIntent


@runtime_checkable
class WalletAgent(Protocol):
    """Signs an entry-function intent and submits it to the ledger.

    Implementations raise ``UserRejectedError`` when the user declines to
    sign. Any other exception is reported by the orchestrator as an
    ``AgentError``.
    """

    @property
    def address(self) -> str:
        """Account address whose key the agent signs with."""
        ...

    async def sign_and_submit_transaction(self, intent: TransactionIntent) -> TransactionHandle:
        """Sign *intent*, submit it, and return the handle of the pending transaction."""
        ...
