"""
EIP-3009 ``transferWithAuthorization`` signing for USDC payments.

The signed authorization lets a facilitator move USDC on the payer's behalf
without the payer sending a transaction.
"""

import os
import time
from decimal import ROUND_DOWN, Decimal
from typing import Any

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from web3 import Web3

from trinity.config import BASE_MAINNET_CHAIN_ID, USDC_BASE_ADDRESS
from trinity.types.payments import SignedPayment, TransferAuthorization

USDC_DECIMALS = 6
VALID_AFTER_SKEW_SECONDS = 60
VALIDITY_WINDOW_SECONDS = 3600

_TRANSFER_WITH_AUTHORIZATION = (
    "transferWithAuthorization(address,address,uint256,uint256,uint256,bytes32,uint8,bytes32,bytes32)"
)

_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ],
}


def to_usdc_units(amount: Decimal | str | int) -> int:
    """Convert a USDC amount (e.g. "1.50") to micro-units, truncating extra decimals."""
    scaled = (Decimal(str(amount)) * (10 ** USDC_DECIMALS)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_usdc_units(units: int) -> Decimal:
    return Decimal(units) / (10 ** USDC_DECIMALS)


def transfer_typed_data(
    authorization: TransferAuthorization,
    chain_id: int = BASE_MAINNET_CHAIN_ID,
    asset_address: str = USDC_BASE_ADDRESS,
    asset_name: str = "USD Coin",
    asset_version: str = "2",
) -> dict[str, Any]:
    """Build the EIP-712 message for ``authorization`` against the asset's domain."""
    return {
        "types": _TYPES,
        "primaryType": "TransferWithAuthorization",
        "domain": {
            "name": asset_name,
            "version": asset_version,
            "chainId": chain_id,
            "verifyingContract": to_checksum_address(asset_address),
        },
        "message": {
            "from": to_checksum_address(authorization.from_address),
            "to": to_checksum_address(authorization.to),
            "value": authorization.value,
            "validAfter": authorization.valid_after,
            "validBefore": authorization.valid_before,
            "nonce": bytes.fromhex(authorization.nonce[2:]),
        },
    }


def sign_transfer_authorization(
    private_key: str,
    to: str,
    value: int,
    chain_id: int = BASE_MAINNET_CHAIN_ID,
    asset_address: str = USDC_BASE_ADDRESS,
    now: int | None = None,
    nonce: bytes | None = None,
) -> SignedPayment:
    """
    Sign a USDC transfer authorization.

    The authorization is valid from one minute before ``now`` (clock skew)
    until one hour after it, and carries a random 32-byte nonce.

    Args:
        private_key: Payer's hex private key
        to: Payee address
        value: Amount in USDC micro-units
        chain_id: Chain the asset lives on
        asset_address: USDC contract address (the EIP-712 verifying contract)
        now: Unix time override
        nonce: 32-byte nonce override

    Returns:
        The signature, the signed message body and ``transferWithAuthorization``
        calldata carrying the split signature
    """
    account = Account.from_key(private_key)
    issued_at = int(time.time()) if now is None else now
    nonce_bytes = nonce if nonce is not None else os.urandom(32)
    if len(nonce_bytes) != 32:
        raise ValueError("nonce must be exactly 32 bytes")

    authorization = TransferAuthorization(
        from_address=account.address,
        to=to_checksum_address(to),
        value=value,
        valid_after=issued_at - VALID_AFTER_SKEW_SECONDS,
        valid_before=issued_at + VALIDITY_WINDOW_SECONDS,
        nonce="0x" + nonce_bytes.hex(),
    )
    signable = encode_typed_data(full_message=transfer_typed_data(authorization, chain_id, asset_address))
    signed = Account.sign_message(signable, private_key=private_key)

    calldata = function_signature_to_4byte_selector(_TRANSFER_WITH_AUTHORIZATION) + encode(
        ["address", "address", "uint256", "uint256", "uint256", "bytes32", "uint8", "bytes32", "bytes32"],
        [
            authorization.from_address,
            authorization.to,
            authorization.value,
            authorization.valid_after,
            authorization.valid_before,
            nonce_bytes,
            signed.v,
            signed.r.to_bytes(32, "big"),
            signed.s.to_bytes(32, "big"),
        ],
    )

    return SignedPayment(
        signature=Web3.to_hex(signed.signature),
        authorization=authorization,
        calldata=Web3.to_hex(calldata),
    )
