"""Minimal contract ABIs for the functions the orchestrator calls."""

from typing import Any


def _fn(
    name: str,
    inputs: list[tuple[str, str]],
    outputs: list[tuple[str, str]] | None = None,
    mutability: str = "nonpayable",
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs or []],
    }


ERC8004_REGISTRY_ABI: list[dict[str, Any]] = [
    _fn("mintIdentity", [("agent", "address"), ("agentURI", "string")], [("tokenId", "uint256")]),
    _fn("addValidation", [("tokenId", "uint256"), ("skillHash", "string"), ("passed", "bool")]),
    _fn("updateReputation", [("tokenId", "uint256"), ("newScore", "uint256")]),
    _fn("getTokenByAgent", [("agent", "address")], [("tokenId", "uint256")], "view"),
    {
        "type": "event",
        "name": "IdentityMinted",
        "anonymous": False,
        "inputs": [
            {"name": "agent", "type": "address", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
            {"name": "agentURI", "type": "string", "indexed": False},
        ],
    },
]

FEE_SPLITTER_ABI: list[dict[str, Any]] = [
    _fn("distributeFees", [("agentTreasury", "address")], mutability="payable"),
    _fn("distributeUSDCFees", [("agentTreasury", "address"), ("amount", "uint256")]),
    _fn("claimETH", []),
    _fn("claimUSDC", []),
    _fn(
        "getClaimable",
        [("account", "address")],
        [("ethAmount", "uint256"), ("usdcAmount", "uint256")],
        "view",
    ),
    _fn("getDistributionCount", [], [("count", "uint256")], "view"),
]

FARCASTER_ID_REGISTRY_ADDRESS = "0x00000000Fc6c5F01Fc30151999387Bb99A9f489b"

FARCASTER_ID_REGISTRY_ABI: list[dict[str, Any]] = [
    _fn("nonces", [("owner", "address")], [("nonce", "uint256")], "view"),
]
