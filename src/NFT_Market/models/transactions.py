"""Transaction models: wallet intents, handles, finality status, and receipts."""

import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from NFT_Market.models.enums import FailureReason, OperationKind, TransactionState
from NFT_Market.models.market import FusionResult


class TransactionIntent(BaseModel):
    """Entry-function payload handed to the wallet agent for signing.

    Every argument is a string; amounts are decimal-string integers in
    minor units.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["entry_function_payload"] = "entry_function_payload"
    function: str
    type_arguments: list[str] = Field(default_factory=list)
    arguments: list[str]

    def to_payload(self) -> dict[str, object]:
        """Wire shape expected by wallet agents (``type`` instead of ``kind``)."""
        return {
            "type": self.kind,
            "function": self.function,
            "type_arguments": list(self.type_arguments),
            "arguments": list(self.arguments),
        }


class TransactionHandle(BaseModel):
    """Reference to a submitted transaction, returned by the wallet agent."""

    model_config = ConfigDict(frozen=True)

    hash: str


class TransactionStatus(BaseModel):
    """Final outcome of a transaction as reported by the ledger node."""

    model_config = ConfigDict(frozen=True)

    hash: str
    success: bool
    vm_status: str
    version: int | None = None


class TransactionAttempt(BaseModel):
    """One state transition in the life of a write operation."""

    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    state: TransactionState
    at: datetime.datetime
    reason: FailureReason | None = None
    detail: str = ""


class TransactionReceipt(BaseModel):
    """Result of a confirmed write operation.

    ``refresh_errors`` lists the post-confirmation refreshes that failed;
    the transaction itself is final regardless.
    """

    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    transaction_hash: str
    state: TransactionState = TransactionState.CONFIRMED
    refresh_errors: list[str] = Field(default_factory=list)
    fusion_result: FusionResult | None = None
