"""
Demo-mode providers.

They satisfy the same capability protocols as the live clients and return
mock values that can never be mistaken for live ones: wallet ids start with
``demo-wallet-``, signer UUIDs with ``demo-signer-``, and demo mints carry
no transaction hash.
"""

import hashlib
import random
import uuid

from trinity.profile import sanitize_username
from trinity.types.identity import IdentityMintResult, SocialAccountResult, WalletResult

DEMO_WALLET_PREFIX = "demo-wallet-"
DEMO_SIGNER_PREFIX = "demo-signer-"
DEMO_NETWORK = "base-sepolia"


def is_demo_value(value: str | None) -> bool:
    return value is not None and value.startswith((DEMO_WALLET_PREFIX, DEMO_SIGNER_PREFIX))


class DemoProviders:
    """Mock wallet, social and identity providers for credential-free runs."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    async def provision_wallet(self, agent_id: str, agent_name: str) -> WalletResult:
        digest = hashlib.sha256(agent_id.encode()).hexdigest()
        return WalletResult(
            wallet_id=f"{DEMO_WALLET_PREFIX}{agent_id[:8]}",
            wallet_address="0xdead" + digest[:36],
            wallet_email=f"{agent_id}@agents.ceos.run",
            network=DEMO_NETWORK,
        )

    async def create_account(
        self,
        agent_id: str,
        username: str,
        display_name: str,
        bio: str,
        pfp_url: str | None = None,
    ) -> SocialAccountResult:
        suffix = self.rng.randint(0, 9999)
        return SocialAccountResult(
            fid=800_000 + self.rng.randrange(100_000),
            signer_uuid=f"{DEMO_SIGNER_PREFIX}{uuid.UUID(int=self.rng.getrandbits(128))}",
            username=f"{sanitize_username(username, 12)}-{suffix:04d}",
            custody_address=None,
        )

    async def mint(self, wallet_address: str, agent_uri: str) -> IdentityMintResult:
        return IdentityMintResult(
            token_id=self.rng.randint(100_000, 999_999),
            agent_uri=agent_uri,
            mint_tx_hash=None,
        )
