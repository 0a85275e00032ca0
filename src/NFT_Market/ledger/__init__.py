"""Ledger access: codec, response schemas, REST gateway, and wallet contract.

Re-exports the public API so consumers can import directly:
    from NFT_Market.ledger import LedgerGateway, decode_text, to_minor_units
"""

from NFT_Market.ledger.codec import (
    decode_text,
    minor_units_argument,
    to_major_units,
    to_minor_units,
)
from NFT_Market.ledger.gateway import LedgerGateway
from NFT_Market.ledger.schemas import module_function_id
from NFT_Market.ledger.wallet import WalletAgent

__all__ = [
    "LedgerGateway",
    "WalletAgent",
    "decode_text",
    "minor_units_argument",
    "module_function_id",
    "to_major_units",
    "to_minor_units",
]
