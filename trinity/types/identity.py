"""Identity provisioning results."""

from dataclasses import dataclass, field
from typing import Any

from trinity.models import TrinityStatus


@dataclass
class WalletResult:
    """A custodial wallet provisioned for an agent."""

    wallet_id: str
    wallet_address: str
    wallet_email: str | None = None
    network: str = "base-sepolia"


@dataclass
class SocialAccountResult:
    """A Farcaster account registered for an agent."""

    fid: int
    signer_uuid: str
    username: str
    custody_address: str | None = None


@dataclass
class IdentityMintResult:
    """An ERC-8004 identity token minted for an agent."""

    token_id: int
    agent_uri: str
    mint_tx_hash: str | None = None


@dataclass
class DeployResult:
    """Outcome of one ``deploy`` call; ``errors`` is empty on full success."""

    trinity_status: TrinityStatus
    wallet: WalletResult | None = None
    social: SocialAccountResult | None = None
    identity: IdentityMintResult | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "trinityStatus": self.trinity_status.value,
            "cdp": _maybe(self.wallet, lambda w: {
                "walletId": w.wallet_id,
                "walletAddress": w.wallet_address,
                "walletEmail": w.wallet_email,
                "network": w.network,
            }),
            "farcaster": _maybe(self.social, lambda s: {
                "fid": s.fid,
                "username": s.username,
                "custodyAddress": s.custody_address,
            }),
            "erc8004": _maybe(self.identity, lambda i: {
                "tokenId": i.token_id,
                "agentUri": i.agent_uri,
                "mintTxHash": i.mint_tx_hash,
            }),
            "errors": list(self.errors),
        }


def _maybe(value: Any, render: Any) -> Any:
    return None if value is None else render(value)
