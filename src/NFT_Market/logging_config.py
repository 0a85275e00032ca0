"""Logging setup for the ``nft-market`` commands.

Library code only calls ``logging.getLogger(__name__)``; handlers and levels
are installed here, once, by the CLI. The polling loop and the finality wait
log every round at DEBUG, so a single noisy area (say the ledger gateway) can
be raised on its own through ``LOG_LEVEL_LEDGER`` and friends.
"""

from __future__ import annotations

import logging
import os

LOG_FORMAT: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Area name in LOG_LEVEL_<AREA> -> logger prefix
_AREA_LOGGERS: dict[str, str] = {
    "LEDGER": "NFT_Market.ledger",
    "REPOSITORIES": "NFT_Market.repositories",
    "TRANSACTIONS": "NFT_Market.transactions",
    "SERVICES": "NFT_Market.services",
    "QUERY": "NFT_Market.query",
}

# Transport loggers that report each request/connection at INFO or DEBUG
_TRANSPORT_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")


def _level_from_name(name: str) -> int | None:
    resolved = logging.getLevelName(name.strip().upper())
    return resolved if isinstance(resolved, int) else None


def configure_logging(
    *,
    level: str = "",
    verbose: bool = False,
    quiet: bool = False,
) -> None:
    """Install the root handler and apply per-area overrides.

    Priority: verbose > quiet > level param > LOG_LEVEL env > INFO default.
    Unknown level names fall back to INFO for the root and are ignored for
    the ``LOG_LEVEL_<AREA>`` overrides.
    """
    if verbose:
        effective = logging.DEBUG
    elif quiet:
        effective = logging.WARNING
    else:
        requested = level or os.environ.get("LOG_LEVEL", "INFO")
        effective = _level_from_name(requested) or logging.INFO

    logging.basicConfig(level=effective, format=LOG_FORMAT, force=True)

    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for area, logger_name in _AREA_LOGGERS.items():
        override = os.environ.get(f"LOG_LEVEL_{area}")
        if not override:
            continue
        resolved = _level_from_name(override)
        if resolved is not None:
            logging.getLogger(logger_name).setLevel(resolved)
