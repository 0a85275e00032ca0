"""Client configuration: ledger endpoint, marketplace address, and tuning knobs.

Values are layered as defaults < JSON settings file < ``NFT_MARKET_*``
environment variables. The resulting ``MarketConfig`` is frozen and passed
explicitly to every component that talks to the ledger.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

NODE_URLS: Final[dict[str, str]] = {
    "mainnet": "https://fullnode.mainnet.aptoslabs.com/v1",
    "testnet": "https://fullnode.testnet.aptoslabs.com/v1",
    "devnet": "https://fullnode.devnet.aptoslabs.com/v1",
}

DEFAULT_NETWORK: Final[str] = "testnet"
DEFAULT_MARKETPLACE_ADDRESS: Final[str] = (
    "0x75cfca25296896f907a457e20a245f9af304cb1e48723d864e17f2e08ad93159"
)
DEFAULT_MODULE_NAME: Final[str] = "NFTMarketplace"
DEFAULT_SETTINGS_PATH: Final[Path] = Path("data/nft_market.json")

ENV_PREFIX: Final[str] = "NFT_MARKET_"


class MarketConfig(BaseModel):
    """Connection and behaviour settings for one marketplace instance."""

    model_config = ConfigDict(frozen=True)

    network: str = DEFAULT_NETWORK
    node_url: str = ""
    marketplace_address: str = DEFAULT_MARKETPLACE_ADDRESS
    module_name: str = DEFAULT_MODULE_NAME

    page_size: int = Field(default=8, ge=1)
    owner_page_limit: int = Field(default=100, ge=1)
    poll_interval_seconds: float = Field(default=30.0, gt=0)
    finality_poll_interval_seconds: float = Field(default=1.0, gt=0)
    # None keeps the finality wait unbounded
    finality_timeout_seconds: float | None = Field(default=None, gt=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    max_concurrent_reads: int = Field(default=5, ge=1)
    requests_per_second: float = Field(default=10.0, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _resolve_node_url(cls, data: object) -> object:
        """Fill ``node_url`` from the network name when not given explicitly."""
        if not isinstance(data, dict):
            return data
        network = str(data.get("network") or DEFAULT_NETWORK)
        if network not in NODE_URLS:
            msg = f"Unknown network '{network}'. Expected one of: {', '.join(NODE_URLS)}"
            raise ValueError(msg)
        node_url = str(data.get("node_url") or NODE_URLS[network])
        return {**data, "network": network, "node_url": node_url.rstrip("/")}


def load_config(path: Path | None = None) -> MarketConfig:
    """Build a ``MarketConfig`` from defaults, a JSON file, and the environment.

    Args:
        path: Settings file to read. Defaults to ``data/nft_market.json``;
            a missing file is not an error.

    Raises:
        pydantic.ValidationError: If a layered value is invalid.
    """
    settings_path = path if path is not None else DEFAULT_SETTINGS_PATH
    values: dict[str, object] = {}

    if settings_path.exists():
        try:
            loaded = json.loads(settings_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.warning("Failed to read settings file %s, using defaults", settings_path)
        else:
            if isinstance(loaded, dict):
                values.update(loaded)
            else:
                logger.warning("Settings file %s is not a JSON object, ignoring", settings_path)

    for field_name in MarketConfig.model_fields:
        env_value = os.environ.get(f"{ENV_PREFIX}{field_name.upper()}")
        if env_value is not None and env_value != "":
            values[field_name] = env_value

    config = MarketConfig.model_validate(values)
    logger.debug(
        "Config loaded: network=%s node=%s marketplace=%s",
        config.network,
        config.node_url,
        config.marketplace_address,
    )
    return config
