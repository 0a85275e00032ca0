"""Health check models: ledger node availability status."""

import datetime

from pydantic import BaseModel, ConfigDict


class LedgerInfo(BaseModel):
    """Node metadata returned by the ledger's index endpoint."""

    model_config = ConfigDict(frozen=True)

    chain_id: int
    ledger_version: int
    ledger_timestamp: datetime.datetime | None = None


class HealthStatus(BaseModel):
    """Status of the ledger node the client relies on.

    Used by the CLI to display readiness before browsing the marketplace.
    """

    model_config = ConfigDict(frozen=True)

    node_url: str
    node_available: bool
    chain_id: int | None = None
    ledger_version: int | None = None
    last_check: datetime.datetime
