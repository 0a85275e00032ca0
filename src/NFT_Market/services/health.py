"""Health check for the ledger node the marketplace reads from.

The check never raises: an unreachable or misbehaving node is reported as
``node_available=False`` so the CLI can show it next to the other output.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import TYPE_CHECKING, Final

from NFT_Market.models.health import HealthStatus
from NFT_Market.utils.exceptions import MarketError

if TYPE_CHECKING:
    from NFT_Market.ledger.gateway import LedgerGateway

logger = logging.getLogger(__name__)

NODE_CHECK_TIMEOUT: Final[float] = 10.0


class HealthService:
    """Check availability of the configured ledger node.

    Usage::

        health = HealthService(gateway)
        status = await health.check_node()
        if not status.node_available:
            logger.warning("Ledger node is down, snapshots will go stale.")
    """

    def __init__(self, gateway: LedgerGateway, *, timeout: float = NODE_CHECK_TIMEOUT) -> None:
        self._gateway = gateway
        self._timeout = timeout

    async def check_node(self) -> HealthStatus:
        """Query the node index endpoint and report chain id and ledger version."""
        node_url = self._gateway.config.node_url
        now = datetime.datetime.now(datetime.UTC)
        try:
            info = await asyncio.wait_for(self._gateway.get_ledger_info(), timeout=self._timeout)
        except TimeoutError:
            logger.warning("Ledger node health check timed out: %s", node_url)
            return HealthStatus(node_url=node_url, node_available=False, last_check=now)
        except MarketError as exc:
            logger.warning("Ledger node health check failed: %s", exc)
            return HealthStatus(node_url=node_url, node_available=False, last_check=now)

        logger.info(
            "Ledger node healthy: chain_id=%d version=%d",
            info.chain_id,
            info.ledger_version,
        )
        return HealthStatus(
            node_url=node_url,
            node_available=True,
            chain_id=info.chain_id,
            ledger_version=info.ledger_version,
            last_check=now,
        )
