"""
Identity provisioning saga.

``deploy`` drives an agent through wallet, social account and on-chain
identity, persisting after every step. The persisted ``trinity_status`` and
identity fields are the only progress record: a step already reflected in
the database is reconstructed from it instead of being executed again, so
``deploy`` may be called any number of times.
"""

import json
from datetime import datetime

from sqlalchemy.orm import Session, sessionmaker

from trinity.capabilities import CreateSocialAccount, MintIdentity, ProvisionWallet
from trinity.database import transaction
from trinity.demo import DemoProviders
from trinity.logging import get_logger
from trinity.models import (
    DEFAULT_STARTING_SCORE,
    Agent,
    AgentStatus,
    ERC8004Identity,
    TrinityStatus,
    utcnow,
)
from trinity.profile import build_bio, display_name, sanitize_username
from trinity.types.identity import (
    DeployResult,
    IdentityMintResult,
    SocialAccountResult,
    WalletResult,
)

logger = get_logger("deployer")

AGENT_URI_VERSION = "1.0"
AGENT_URI_PLATFORM = "ceos.run"
AGENT_URI_MAX_SKILLS = 5


def build_agent_uri(
    agent_id: str,
    wallet_address: str,
    fid: int,
    skills: list[str],
    registered_at: datetime,
) -> str:
    """Compact JSON identity document stored on-chain with the mint."""
    return json.dumps(
        {
            "version": AGENT_URI_VERSION,
            "platform": AGENT_URI_PLATFORM,
            "agentId": agent_id,
            "walletAddress": wallet_address,
            "fid": fid,
            "skills": list(skills[:AGENT_URI_MAX_SKILLS]),
            "registeredAt": registered_at.isoformat().replace("+00:00", "Z"),
        },
        separators=(",", ":"),
    )


def _wallet_from(agent: Agent) -> WalletResult:
    return WalletResult(
        wallet_id=agent.wallet_id or "",
        wallet_address=agent.wallet_address or "",
        wallet_email=agent.wallet_email,
    )


def _social_from(agent: Agent) -> SocialAccountResult:
    return SocialAccountResult(
        fid=agent.fid or 0,
        signer_uuid=agent.signer_uuid or "",
        username=agent.farcaster_username or "",
        custody_address=agent.custody_address,
    )


def _identity_from(agent: Agent) -> IdentityMintResult:
    return IdentityMintResult(
        token_id=agent.erc8004_token_id or 0,
        agent_uri=agent.agent_uri or "",
        mint_tx_hash=agent.trinity_mint_tx,
    )


class TrinityDeployer:
    """
    Runs the wallet, social and identity steps for one agent at a time.

    Args:
        session_factory: Session factory for the orchestrator database
        wallets: Wallet provisioning capability
        social: Social account creation capability
        identities: Identity minting capability
        demo_mode: Recorded in the identity's registration snapshot
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        wallets: ProvisionWallet,
        social: CreateSocialAccount,
        identities: MintIdentity,
        demo_mode: bool = False,
    ) -> None:
        self.session_factory = session_factory
        self.wallets = wallets
        self.social = social
        self.identities = identities
        self.demo_mode = demo_mode

    @classmethod
    def demo(cls, session_factory: sessionmaker[Session], providers: DemoProviders | None = None) -> "TrinityDeployer":
        """Deployer wired to mock providers for every external call."""
        providers = providers or DemoProviders()
        return cls(session_factory, providers, providers, providers, demo_mode=True)

    async def deploy(self, agent_id: str) -> DeployResult:
        """
        Advance an agent's identity provisioning as far as possible.

        Never raises: a failing step is reported in ``errors`` and leaves
        ``trinity_status`` at the last completed step.

        Args:
            agent_id: Agent to deploy

        Returns:
            DeployResult with the reached status and each step's result
        """
        with self.session_factory() as session:
            agent = session.get(Agent, agent_id)
            if agent is None:
                logger.warning("Deploy requested for unknown agent %s", agent_id)
                return DeployResult(trinity_status=TrinityStatus.NONE, errors=[f"Agent {agent_id} not found"])
            session.expunge(agent)

        result = DeployResult(trinity_status=agent.trinity_status)
        logger.info("Deploying agent %s from %s", agent_id, agent.trinity_status.value)

        # Step 1: custodial wallet
        if agent.trinity_status.reached(TrinityStatus.CDP_ONLY):
            result.wallet = _wallet_from(agent)
        else:
            try:
                wallet = await self.wallets.provision_wallet(agent.id, agent.name)
                self._save_wallet(agent.id, wallet)
            except Exception as e:
                logger.error("Wallet step failed for %s: %s", agent_id, e)
                result.errors.append(f"CDP provisioning failed: {e}")
                return result
            result.wallet = wallet
            result.trinity_status = TrinityStatus.CDP_ONLY

        # Step 2: social account scoped to the wallet
        if agent.trinity_status.reached(TrinityStatus.CDP_FARCASTER):
            result.social = _social_from(agent)
        else:
            try:
                account = await self.social.create_account(
                    agent_id=agent.id,
                    username=sanitize_username(agent.name),
                    display_name=display_name(agent.name),
                    bio=build_bio(agent.description),
                    pfp_url=agent.pfp_url,
                )
                account = self._save_social(agent.id, account)
            except Exception as e:
                logger.error("Social step failed for %s: %s", agent_id, e)
                result.errors.append(f"Farcaster creation failed: {e}")
                return result
            result.social = account
            result.trinity_status = TrinityStatus.CDP_FARCASTER

        # Step 3: on-chain identity, written together with the identity row
        if agent.trinity_status.reached(TrinityStatus.COMPLETE):
            result.identity = _identity_from(agent)
        else:
            try:
                agent_uri = build_agent_uri(
                    agent.id,
                    result.wallet.wallet_address,
                    result.social.fid,
                    list(agent.skill_ids or []),
                    utcnow(),
                )
                minted = await self.identities.mint(result.wallet.wallet_address, agent_uri)
                self._save_identity(agent.id, minted, result.wallet, result.social, agent.skill_ids or [])
            except Exception as e:
                logger.error("Identity step failed for %s: %s", agent_id, e)
                result.errors.append(f"ERC-8004 mint failed: {e}")
                return result
            result.identity = minted
            result.trinity_status = TrinityStatus.COMPLETE

        logger.info("Agent %s deployed (%s)", agent_id, result.trinity_status.value)
        return result

    def _save_wallet(self, agent_id: str, wallet: WalletResult) -> None:
        with transaction(self.session_factory) as session:
            agent = session.get_one(Agent, agent_id)
            agent.wallet_id = wallet.wallet_id
            agent.wallet_address = wallet.wallet_address
            agent.wallet_email = wallet.wallet_email
            agent.trinity_status = TrinityStatus.CDP_ONLY
            if agent.status == AgentStatus.PENDING:
                agent.status = AgentStatus.DEPLOYING

    def _save_social(self, agent_id: str, account: SocialAccountResult) -> SocialAccountResult:
        """
        Record ``account`` unless the social worker stored one first.

        Returns:
            The account now on the agent
        """
        with transaction(self.session_factory) as session:
            agent = session.get_one(Agent, agent_id)
            if agent.has_social_identity:
                logger.warning(
                    "Agent %s got fid %s while its account was created, discarding fid %d",
                    agent_id, agent.fid, account.fid,
                )
                if not agent.trinity_status.reached(TrinityStatus.CDP_FARCASTER):
                    agent.trinity_status = TrinityStatus.CDP_FARCASTER
                return _social_from(agent)
            agent.fid = account.fid
            agent.signer_uuid = account.signer_uuid
            agent.farcaster_username = account.username
            agent.custody_address = account.custody_address
            agent.trinity_status = TrinityStatus.CDP_FARCASTER
        return account

    def _save_identity(
        self,
        agent_id: str,
        minted: IdentityMintResult,
        wallet: WalletResult,
        social: SocialAccountResult,
        skills: list[str],
    ) -> None:
        now = utcnow()
        with transaction(self.session_factory) as session:
            agent = session.get_one(Agent, agent_id)
            agent.erc8004_token_id = minted.token_id
            agent.agent_uri = minted.agent_uri
            agent.trinity_mint_tx = minted.mint_tx_hash
            agent.trinity_linked_at = now
            agent.trinity_status = TrinityStatus.COMPLETE
            if agent.status in (AgentStatus.PENDING, AgentStatus.DEPLOYING):
                agent.status = AgentStatus.ACTIVE
            session.add(
                ERC8004Identity(
                    agent_id=agent_id,
                    token_id=minted.token_id,
                    agent_uri=minted.agent_uri,
                    reputation_score=DEFAULT_STARTING_SCORE,
                    registration_json={
                        "walletAddress": wallet.wallet_address,
                        "fid": social.fid,
                        "skills": list(skills),
                        "deployedAt": now.isoformat(),
                        "demoMode": self.demo_mode,
                    },
                )
            )
