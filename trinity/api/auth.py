"""Wallet-signature authentication for API callers."""

from eth_account import Account
from eth_account.messages import encode_defunct

from trinity.exceptions import UnauthorizedError
from trinity.logging import get_logger

logger = get_logger("api.auth")

DEMO_WALLET = "0xDE00000000000000000000000000000000000001"


def verify_wallet_signature(
    address: str | None,
    signature: str | None,
    message: str | None,
    demo_mode: bool = False,
) -> str:
    """
    Resolve the caller's wallet address from the authentication headers.

    The caller signs ``message`` with EIP-191 ``personal_sign``; the
    recovered signer must equal ``address``. In demo mode the address
    header is trusted as-is and a missing one falls back to a demo wallet.

    Args:
        address: ``x-wallet-address`` header
        signature: ``x-wallet-signature`` header
        message: ``x-wallet-message`` header
        demo_mode: Skip signature verification

    Returns:
        The caller's address

    Raises:
        UnauthorizedError: If a header is missing or the signature does not match
    """
    if not address:
        if demo_mode:
            return DEMO_WALLET
        raise UnauthorizedError("UNAUTHORIZED", "Missing wallet address header")

    if demo_mode:
        return address

    if not signature or not message:
        raise UnauthorizedError("UNAUTHORIZED", "Missing wallet authentication headers")

    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:  # eth_keys has its own error types for malformed signatures
        logger.warning("Wallet signature for %s could not be decoded: %s", address, e)
        raise UnauthorizedError("UNAUTHORIZED", "Wallet signature verification failed") from e

    if recovered.lower() != address.lower():
        raise UnauthorizedError("UNAUTHORIZED", "Invalid wallet signature")
    return address
