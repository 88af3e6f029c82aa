"""ERC-8004 identity minting."""

from trinity.chain.abis import ERC8004_REGISTRY_ABI
from trinity.chain.client import ChainClient
from trinity.exceptions import ChainError
from trinity.logging import get_logger
from trinity.types.identity import IdentityMintResult

logger = get_logger("chain.identity")


class IdentityMinter:
    """Mints identity tokens on the ERC-8004 registry with the deployer key."""

    def __init__(self, chain: ChainClient, registry_address: str | None) -> None:
        self.chain = chain
        self.registry_address = registry_address

    async def mint(self, wallet_address: str, agent_uri: str) -> IdentityMintResult:
        """
        Mint a token for ``wallet_address`` and wait for confirmation.

        The token id is read from the ``IdentityMinted`` event; if the event
        cannot be decoded, the registry is queried by owner instead.

        Raises:
            ChainError: If the registry is not configured or the mint fails
        """
        if not self.registry_address:
            raise ChainError("NO_REGISTRY", "ERC-8004 registry address not configured")

        tx_hash = await self.chain.write_contract(
            self.registry_address, ERC8004_REGISTRY_ABI, "mintIdentity", (wallet_address, agent_uri)
        )
        receipt = await self.chain.wait_for_transaction(tx_hash)

        events = self.chain.decode_events(
            self.registry_address, ERC8004_REGISTRY_ABI, "IdentityMinted", receipt
        )
        if events:
            token_id = int(events[0]["tokenId"])
        else:
            logger.warning("IdentityMinted event missing from %s, querying registry", tx_hash)
            token_id = int(await self.chain.read_contract(
                self.registry_address, ERC8004_REGISTRY_ABI, "getTokenByAgent", (wallet_address,)
            ))

        logger.info("Identity %s minted for %s", token_id, wallet_address)
        return IdentityMintResult(token_id=token_id, agent_uri=agent_uri, mint_tx_hash=tx_hash)
