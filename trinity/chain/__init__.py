"""Chain access: contract calls, identity minting and payment signing."""

from trinity.chain.abis import ERC8004_REGISTRY_ABI, FEE_SPLITTER_ABI
from trinity.chain.client import ChainClient
from trinity.chain.identity import IdentityMinter
from trinity.chain.payments import (
    USDC_DECIMALS,
    from_usdc_units,
    sign_transfer_authorization,
    to_usdc_units,
)

__all__ = [
    "ChainClient",
    "IdentityMinter",
    "ERC8004_REGISTRY_ABI",
    "FEE_SPLITTER_ABI",
    "USDC_DECIMALS",
    "sign_transfer_authorization",
    "to_usdc_units",
    "from_usdc_units",
]
