"""
Neynar (Farcaster) client.

Account creation reserves an fid from Neynar's sponsored pool, derives a
per-agent custody account from the deployer key, signs the IdRegistry
``Transfer`` message with it and registers the account.
"""

import time
from typing import TYPE_CHECKING, Any

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from eth_utils import keccak
from web3 import Web3

from trinity.chain.abis import FARCASTER_ID_REGISTRY_ABI, FARCASTER_ID_REGISTRY_ADDRESS
from trinity.exceptions import ConfigurationError, ProviderError
from trinity.logging import get_logger
from trinity.types.identity import SocialAccountResult

if TYPE_CHECKING:
    from trinity.chain.client import ChainClient
    from trinity.transport import AsyncHTTPTransport

logger = get_logger("clients.neynar")

CAST_MAX_LENGTH = 320
OPTIMISM_CHAIN_ID = 10
TRANSFER_DEADLINE_SECONDS = 3600


def truncate_cast(text: str) -> str:
    if len(text) <= CAST_MAX_LENGTH:
        return text
    return text[: CAST_MAX_LENGTH - 3] + "..."


def derive_custody_account(deployer_private_key: str, agent_id: str) -> LocalAccount:
    """Derive a deterministic custody account for one agent."""
    return Account.from_key(keccak(text=f"{deployer_private_key}:{agent_id}"))


def fid_transfer_typed_data(fid: int, to: str, nonce: int, deadline: int) -> dict[str, Any]:
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "Transfer": [
                {"name": "fid", "type": "uint256"},
                {"name": "to", "type": "address"},
                {"name": "nonce", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
            ],
        },
        "primaryType": "Transfer",
        "domain": {
            "name": "Farcaster IdRegistry",
            "version": "1",
            "chainId": OPTIMISM_CHAIN_ID,
            "verifyingContract": FARCASTER_ID_REGISTRY_ADDRESS,
        },
        "message": {"fid": fid, "to": to, "nonce": nonce, "deadline": deadline},
    }


class NeynarClient:
    """Farcaster account registration and casting through Neynar."""

    def __init__(
        self,
        transport: "AsyncHTTPTransport",
        wallet_id: str | None = None,
        deployer_private_key: str | None = None,
        id_registry: "ChainClient | None" = None,
    ) -> None:
        """
        Initialize the Neynar client.

        Args:
            transport: Transport bound to the Neynar API with the api_key header set
            wallet_id: Neynar sponsoring wallet id (required for account creation)
            deployer_private_key: Root key custody accounts are derived from
            id_registry: Optimism chain client used to read IdRegistry nonces
        """
        self.transport = transport
        self.wallet_id = wallet_id
        self._deployer_private_key = deployer_private_key
        self.id_registry = id_registry

    def _wallet_headers(self) -> dict[str, str]:
        if not self.wallet_id:
            raise ConfigurationError("NEYNAR_WALLET_ID not configured, account creation unavailable")
        return {"x-wallet-id": self.wallet_id}

    async def reserve_fid(self) -> int:
        response = await self.transport.request("GET", "/user/fid", headers=self._wallet_headers())
        fid = response.get("fid")
        if fid is None:
            raise ProviderError("NO_FID", "Neynar returned no fid")
        return int(fid)

    async def register_account(
        self,
        fid: int,
        custody_address: str,
        signature: str,
        deadline: int,
        username: str,
        display_name: str,
        bio: str,
        pfp_url: str | None = None,
    ) -> str:
        """Register a reserved fid and return the new account's signer UUID."""
        response = await self.transport.request(
            "POST",
            "/user",
            headers=self._wallet_headers(),
            body={
                "signature": signature,
                "fid": fid,
                "requested_user_custody_address": custody_address,
                "deadline": deadline,
                "fname": username,
                "metadata": {
                    "bio": bio,
                    "pfp_url": pfp_url or "",
                    "display_name": display_name,
                    "url": "",
                },
            },
        )
        signer_uuid = (response.get("signer") or {}).get("signer_uuid")
        if not signer_uuid:
            raise ProviderError("NO_SIGNER", "Neynar registration returned no signer")
        return signer_uuid

    async def create_account(
        self,
        agent_id: str,
        username: str,
        display_name: str,
        bio: str,
        pfp_url: str | None = None,
    ) -> SocialAccountResult:
        """
        Create a Farcaster account for an agent.

        Raises:
            ConfigurationError: If the wallet id, deployer key or IdRegistry
                client is missing
            ProviderError: If Neynar returns an unusable response
        """
        if not self._deployer_private_key or self.id_registry is None:
            raise ConfigurationError("Deployer key and Optimism RPC required for account creation")

        fid = await self.reserve_fid()
        custody = derive_custody_account(self._deployer_private_key, agent_id)
        nonce = await self.id_registry.read_contract(
            FARCASTER_ID_REGISTRY_ADDRESS, FARCASTER_ID_REGISTRY_ABI, "nonces", (custody.address,)
        )
        deadline = int(time.time()) + TRANSFER_DEADLINE_SECONDS
        signed = custody.sign_message(
            encode_typed_data(full_message=fid_transfer_typed_data(fid, custody.address, int(nonce), deadline))
        )

        signer_uuid = await self.register_account(
            fid=fid,
            custody_address=custody.address,
            signature=Web3.to_hex(signed.signature),
            deadline=deadline,
            username=username,
            display_name=display_name,
            bio=bio,
            pfp_url=pfp_url,
        )
        logger.info("Registered Farcaster account @%s (fid %d)", username, fid)
        return SocialAccountResult(
            fid=fid, signer_uuid=signer_uuid, username=username, custody_address=custody.address
        )

    async def publish_cast(self, signer_uuid: str, text: str) -> str:
        """Publish a cast and return its hash; text over 320 chars is truncated."""
        response = await self.transport.request(
            "POST",
            "/cast",
            body={"signer_uuid": signer_uuid, "text": truncate_cast(text)},
        )
        cast_hash = (response.get("cast") or {}).get("hash")
        if not cast_hash:
            raise ProviderError("NO_CAST", "Neynar returned no cast hash")
        return cast_hash
