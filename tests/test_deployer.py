"""
Tests for the identity provisioning saga.

Feature: resumable deployment
"""

import json
import random

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from trinity.database import transaction
from trinity.demo import DEMO_SIGNER_PREFIX, DEMO_WALLET_PREFIX, DemoProviders, is_demo_value
from trinity.deployer import TrinityDeployer, build_agent_uri
from trinity.exceptions import ChainError, ProviderError
from trinity.models import Agent, AgentStatus, ERC8004Identity, TrinityStatus, utcnow
from trinity.testing import (
    FakeIdentityMinter,
    FakeSocialProvider,
    FakeWalletProvider,
    create_test_agent,
)
from trinity.types.identity import DeployResult


@pytest.fixture
def deployer(
    session_factory: sessionmaker[Session],
    fake_wallets: FakeWalletProvider,
    fake_social: FakeSocialProvider,
    fake_minter: FakeIdentityMinter,
) -> TrinityDeployer:
    return TrinityDeployer(session_factory, fake_wallets, fake_social, fake_minter)


def _load(session_factory: sessionmaker[Session], agent_id: str) -> Agent:
    with session_factory() as session:
        return session.get_one(Agent, agent_id)


def _identity_count(session_factory: sessionmaker[Session], agent_id: str) -> int:
    with session_factory() as session:
        return session.scalar(
            select(func.count()).select_from(ERC8004Identity).where(ERC8004Identity.agent_id == agent_id)
        )


class TestFullDeploy:
    async def test_runs_all_three_steps(self, session_factory, deployer, fake_wallets, fake_social, fake_minter) -> None:
        agent = create_test_agent(session_factory, name="Alpha Scout")

        result = await deployer.deploy(agent.id)

        assert result.ok
        assert result.trinity_status == TrinityStatus.COMPLETE
        assert fake_wallets.call_count("provision_wallet") == 1
        assert fake_social.call_count("create_account") == 1
        assert fake_minter.call_count("mint") == 1

        stored = _load(session_factory, agent.id)
        assert stored.status == AgentStatus.ACTIVE
        assert stored.trinity_status == TrinityStatus.COMPLETE
        assert stored.wallet_address == result.wallet.wallet_address
        assert stored.fid == result.social.fid
        assert stored.erc8004_token_id == result.identity.token_id
        assert stored.trinity_linked_at is not None
        assert stored.identity_fields_consistent()
        assert _identity_count(session_factory, agent.id) == 1

    async def test_social_account_uses_sanitized_username(self, session_factory, deployer, fake_social) -> None:
        agent = create_test_agent(session_factory, name="Alpha Scout!!")

        await deployer.deploy(agent.id)

        call = fake_social.get_calls("create_account")[0]
        assert call.args[1] == "alpha-scout"
        assert call.kwargs["display_name"] == "Alpha Scout!!"

    async def test_agent_uri_describes_identity(self, session_factory, deployer, fake_minter) -> None:
        agent = create_test_agent(session_factory, skill_ids=["a", "b", "c", "d", "e", "f"])

        result = await deployer.deploy(agent.id)

        uri = json.loads(fake_minter.get_calls("mint")[0].args[1])
        assert uri["agentId"] == agent.id
        assert uri["walletAddress"] == result.wallet.wallet_address
        assert uri["fid"] == result.social.fid
        assert uri["skills"] == ["a", "b", "c", "d", "e"]
        assert uri["registeredAt"].endswith("Z")


class TestIdempotence:
    async def test_second_deploy_makes_no_external_calls(
        self, session_factory, deployer, fake_wallets, fake_social, fake_minter
    ) -> None:
        """
        Property 1: Deploy is idempotent

        Re-running deploy on a COMPLETE agent SHALL reconstruct every step
        from the database without calling any provider again.
        """
        agent = create_test_agent(session_factory)
        first = await deployer.deploy(agent.id)

        second = await deployer.deploy(agent.id)

        assert second.ok
        assert second.trinity_status == TrinityStatus.COMPLETE
        assert second.wallet.wallet_address == first.wallet.wallet_address
        assert second.social.fid == first.social.fid
        assert second.identity.token_id == first.identity.token_id
        assert fake_wallets.call_count("provision_wallet") == 1
        assert fake_social.call_count("create_account") == 1
        assert fake_minter.call_count("mint") == 1
        assert _identity_count(session_factory, agent.id) == 1

    async def test_resumes_from_persisted_wallet(self, session_factory, deployer, fake_wallets, fake_social) -> None:
        agent = create_test_agent(
            session_factory,
            status=AgentStatus.DEPLOYING,
            trinity_status=TrinityStatus.CDP_ONLY,
            wallet_id="w-existing",
            wallet_address="0x" + "ee" * 20,
        )

        result = await deployer.deploy(agent.id)

        assert result.ok
        assert not fake_wallets.was_called("provision_wallet")
        assert result.wallet.wallet_id == "w-existing"
        assert fake_social.call_count("create_account") == 1

    async def test_keeps_account_stored_by_worker_meanwhile(
        self, session_factory, fake_wallets, fake_minter
    ) -> None:
        agent = create_test_agent(
            session_factory,
            status=AgentStatus.DEPLOYING,
            trinity_status=TrinityStatus.CDP_ONLY,
            wallet_id="w-existing",
            wallet_address="0x" + "ee" * 20,
        )
        social = WorkerRacingSocial(session_factory, worker_fid=1001)
        deployer = TrinityDeployer(session_factory, fake_wallets, social, fake_minter)

        result = await deployer.deploy(agent.id)

        assert result.ok
        assert result.social.fid == 1001
        stored = _load(session_factory, agent.id)
        assert stored.fid == 1001
        assert stored.signer_uuid == "worker-signer"
        assert stored.trinity_status == TrinityStatus.COMPLETE
        assert json.loads(fake_minter.get_calls("mint")[0].args[1])["fid"] == 1001


class WorkerRacingSocial(FakeSocialProvider):
    """Stores another account on the agent while its own is being created."""

    def __init__(self, session_factory: sessionmaker[Session], worker_fid: int) -> None:
        super().__init__(first_fid=worker_fid + 1)
        self.session_factory = session_factory
        self.worker_fid = worker_fid

    async def create_account(self, agent_id, username, display_name, bio, pfp_url=None):
        with transaction(self.session_factory) as session:
            agent = session.get_one(Agent, agent_id)
            agent.fid = self.worker_fid
            agent.signer_uuid = "worker-signer"
            agent.farcaster_username = "worker-made"
            agent.trinity_status = TrinityStatus.CDP_FARCASTER
        return await super().create_account(agent_id, username, display_name, bio, pfp_url)


class TestStepFailures:
    async def test_wallet_failure_stops_at_none(self, session_factory, deployer, fake_wallets, fake_social) -> None:
        fake_wallets.configure_provision_wallet(error=ProviderError("CDP_DOWN", "wallet API unavailable"))
        agent = create_test_agent(session_factory)

        result = await deployer.deploy(agent.id)

        assert not result.ok
        assert result.trinity_status == TrinityStatus.NONE
        assert result.errors[0].startswith("CDP provisioning failed")
        assert not fake_social.was_called("create_account")
        stored = _load(session_factory, agent.id)
        assert stored.trinity_status == TrinityStatus.NONE
        assert stored.status == AgentStatus.PENDING

    async def test_social_failure_keeps_wallet(self, session_factory, deployer, fake_social, fake_minter) -> None:
        fake_social.configure_create_account(error=ProviderError("NEYNAR", "fname taken"))
        agent = create_test_agent(session_factory)

        result = await deployer.deploy(agent.id)

        assert result.trinity_status == TrinityStatus.CDP_ONLY
        assert "Farcaster creation failed" in result.errors[0]
        assert not fake_minter.was_called("mint")
        stored = _load(session_factory, agent.id)
        assert stored.trinity_status == TrinityStatus.CDP_ONLY
        assert stored.status == AgentStatus.DEPLOYING
        assert stored.wallet_id is not None
        assert stored.fid is None
        assert stored.identity_fields_consistent()

    async def test_mint_failure_then_retry_completes(
        self, session_factory, deployer, fake_wallets, fake_social, fake_minter
    ) -> None:
        fake_minter.configure_mint(errors=[ChainError("SIMULATION_REVERTED", "register would revert")])
        agent = create_test_agent(session_factory)

        failed = await deployer.deploy(agent.id)
        assert failed.trinity_status == TrinityStatus.CDP_FARCASTER
        assert "ERC-8004 mint failed" in failed.errors[0]
        assert _identity_count(session_factory, agent.id) == 0
        assert _load(session_factory, agent.id).erc8004_token_id is None

        resumed = await deployer.deploy(agent.id)

        assert resumed.ok
        assert resumed.trinity_status == TrinityStatus.COMPLETE
        assert fake_wallets.call_count("provision_wallet") == 1
        assert fake_social.call_count("create_account") == 1
        assert fake_minter.call_count("mint") == 2
        assert _identity_count(session_factory, agent.id) == 1

    async def test_failed_identity_row_rolls_back_mint_record(
        self, session_factory, deployer, fake_minter, fail_writes
    ) -> None:
        """
        Property 4: Identity is recorded atomically

        If the identity row cannot be inserted after a successful mint, the
        agent SHALL stay CDP_FARCASTER with no token recorded.
        """
        agent = create_test_agent(session_factory)
        fail_writes(ERC8004Identity, "before_insert")

        result = await deployer.deploy(agent.id)

        assert result.trinity_status == TrinityStatus.CDP_FARCASTER
        assert "ERC-8004 mint failed" in result.errors[0]
        assert fake_minter.call_count("mint") == 1
        stored = _load(session_factory, agent.id)
        assert stored.trinity_status == TrinityStatus.CDP_FARCASTER
        assert stored.erc8004_token_id is None
        assert stored.agent_uri is None
        assert stored.identity_fields_consistent()
        assert _identity_count(session_factory, agent.id) == 0

    async def test_unknown_agent_reports_error(self, deployer, fake_wallets) -> None:
        result = await deployer.deploy("does-not-exist")

        assert result.trinity_status == TrinityStatus.NONE
        assert result.errors == ["Agent does-not-exist not found"]
        assert fake_wallets.total_calls == 0


class TestDemoMode:
    async def test_demo_values_are_recognizable(self, session_factory) -> None:
        deployer = TrinityDeployer.demo(session_factory, DemoProviders(random.Random(7)))
        agent = create_test_agent(session_factory, name="Demo Agent")

        result = await deployer.deploy(agent.id)

        assert result.ok
        assert result.wallet.wallet_id.startswith(DEMO_WALLET_PREFIX)
        assert result.social.signer_uuid.startswith(DEMO_SIGNER_PREFIX)
        assert result.identity.mint_tx_hash is None
        assert is_demo_value(result.wallet.wallet_id)
        with session_factory() as session:
            identity = session.scalars(select(ERC8004Identity)).one()
            assert identity.registration_json["demoMode"] is True

    def test_live_values_are_not_demo(self) -> None:
        assert not is_demo_value("wallet-123")
        assert not is_demo_value(None)


def test_build_agent_uri_is_compact() -> None:
    uri = build_agent_uri("a1", "0x" + "00" * 20, 12, ["x"], utcnow())
    assert " " not in uri
    assert json.loads(uri)["platform"] == "ceos.run"


def test_to_dict_shape() -> None:
    data = DeployResult(trinity_status=TrinityStatus.NONE, errors=["boom"]).to_dict()
    assert data == {
        "trinityStatus": "NONE",
        "cdp": None,
        "farcaster": None,
        "erc8004": None,
        "errors": ["boom"],
    }
