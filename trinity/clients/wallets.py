"""Custodial wallet provider client."""

from typing import TYPE_CHECKING

from trinity.exceptions import ProviderError
from trinity.types.identity import WalletResult

if TYPE_CHECKING:
    from trinity.transport import AsyncHTTPTransport

AGENT_EMAIL_DOMAIN = "agents.ceos.run"


class WalletClient:
    """Provisions one custodial wallet per agent."""

    def __init__(self, transport: "AsyncHTTPTransport", network: str = "base-sepolia") -> None:
        """
        Initialize the wallet client.

        Args:
            transport: Transport bound to the wallet provider API
            network: Network id new wallets are created on
        """
        self.transport = transport
        self.network = network

    async def provision_wallet(self, agent_id: str, agent_name: str) -> WalletResult:
        """
        Create a wallet for an agent.

        Args:
            agent_id: The agent's id, stored as wallet metadata
            agent_name: Display name for the wallet

        Returns:
            WalletResult with the provider's wallet id and default address

        Raises:
            ProviderError: If the response has no wallet id or address
        """
        response = await self.transport.request(
            "POST",
            "/wallets",
            body={
                "wallet": {"network_id": self.network, "use_server_signer": True},
                "name": agent_name,
                "metadata": {"agentId": agent_id},
            },
        )

        wallet_id = response.get("id")
        address = (response.get("default_address") or {}).get("address_id")
        if not wallet_id or not address:
            raise ProviderError("INVALID_WALLET", "Wallet provider returned no id or address")

        return WalletResult(
            wallet_id=wallet_id,
            wallet_address=address,
            wallet_email=f"{agent_id}@{AGENT_EMAIL_DOMAIN}",
            network=response.get("network_id", self.network),
        )
