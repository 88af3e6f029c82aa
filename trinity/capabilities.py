"""
Narrow interfaces to the external systems the orchestrator drives.

The deployer and workers depend only on these protocols; the HTTP and
chain clients, the demo providers and the test fakes all satisfy them.
"""

from typing import Protocol

from trinity.types.identity import IdentityMintResult, SocialAccountResult, WalletResult


class ProvisionWallet(Protocol):
    async def provision_wallet(self, agent_id: str, agent_name: str) -> WalletResult: ...


class CreateSocialAccount(Protocol):
    async def create_account(
        self,
        agent_id: str,
        username: str,
        display_name: str,
        bio: str,
        pfp_url: str | None = None,
    ) -> SocialAccountResult: ...


class MintIdentity(Protocol):
    async def mint(self, wallet_address: str, agent_uri: str) -> IdentityMintResult: ...


class GenerateImage(Protocol):
    async def generate_image(self, prompt: str, width: int, height: int) -> str:
        """Return the URL of the generated image."""
        ...


class PublishCast(Protocol):
    async def publish_cast(self, signer_uuid: str, text: str) -> str:
        """Return the hash of the published cast."""
        ...
