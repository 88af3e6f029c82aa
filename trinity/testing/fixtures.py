"""
Pytest fixtures and factories for orchestrator testing.

The database fixtures run against an in-memory SQLite database with the full
schema; the factories insert rows with sensible defaults that individual
tests override.
"""

from collections.abc import Generator
from datetime import timedelta
from typing import Any

import pytest
from sqlalchemy import event
from sqlalchemy.orm import Session, sessionmaker

from trinity.database import create_all, create_engine_from_url, make_session_factory
from trinity.models import (
    Agent,
    AgentDecisionLog,
    AgentStatus,
    ServiceJob,
    ServiceJobStatus,
    ServiceOffering,
    TrinityStatus,
    new_id,
    utcnow,
)
from trinity.testing.mock import (
    FakeChainClient,
    FakeIdentityMinter,
    FakeImageGenerator,
    FakeSocialProvider,
    FakeWalletProvider,
)

CREATOR_ADDRESS = "0x" + "c1" * 20
BUYER_CREATOR_ADDRESS = "0x" + "b2" * 20


# ============================================================================
# Factories
# ============================================================================


def _insert(session_factory: sessionmaker[Session], row: Any) -> Any:
    with session_factory() as session:
        session.add(row)
        session.commit()
        session.refresh(row)
        session.expunge(row)
    return row


def create_test_agent(session_factory: sessionmaker[Session], **overrides: Any) -> Agent:
    """
    Insert an agent row.

    Example:
        ```python
        agent = create_test_agent(
            session_factory,
            status=AgentStatus.DEPLOYING,
            wallet_id="w-1",
        )
        ```
    """
    values: dict[str, Any] = {
        "id": new_id(),
        "name": "Test Agent",
        "creator_address": CREATOR_ADDRESS,
        "description": "An agent used in tests",
        "skill_ids": ["research", "summarize"],
        "status": AgentStatus.PENDING,
        "trinity_status": TrinityStatus.NONE,
    }
    values.update(overrides)
    return _insert(session_factory, Agent(**values))


def create_active_agent(session_factory: sessionmaker[Session], **overrides: Any) -> Agent:
    """Insert an ACTIVE agent with a completed identity."""
    agent_id = overrides.pop("id", new_id())
    values: dict[str, Any] = {
        "id": agent_id,
        "status": AgentStatus.ACTIVE,
        "trinity_status": TrinityStatus.COMPLETE,
        "wallet_id": f"wallet-{agent_id}",
        "wallet_address": "0x" + "aa" * 20,
        "fid": 4242,
        "signer_uuid": f"signer-{agent_id}",
        "farcaster_username": "test-agent",
        "erc8004_token_id": 7,
        "agent_uri": '{"agentId":"%s"}' % agent_id,
    }
    values.update(overrides)
    return create_test_agent(session_factory, **values)


def create_test_offering(
    session_factory: sessionmaker[Session],
    seller: Agent,
    **overrides: Any,
) -> ServiceOffering:
    values: dict[str, Any] = {
        "id": new_id(),
        "seller_agent_id": seller.id,
        "slug": f"offering-{new_id()[:8]}",
        "name": "Market Research",
        "category": "research",
        "description": "Summarized research on a topic",
        "price_usdc": 1_000_000,
        "max_latency_ms": 30_000,
    }
    values.update(overrides)
    return _insert(session_factory, ServiceOffering(**values))


def create_test_job(
    session_factory: sessionmaker[Session],
    offering: ServiceOffering,
    buyer: Agent,
    **overrides: Any,
) -> ServiceJob:
    """Insert a job for ``offering`` bought by ``buyer``, expiring in an hour."""
    values: dict[str, Any] = {
        "id": new_id(),
        "offering_id": offering.id,
        "buyer_agent_id": buyer.id,
        "seller_agent_id": offering.seller_agent_id,
        "status": ServiceJobStatus.CREATED,
        "price_usdc": offering.price_usdc,
        "requirements": {"topic": "l2 fees"},
        "expires_at": utcnow() + timedelta(hours=1),
    }
    values.update(overrides)
    return _insert(session_factory, ServiceJob(**values))


def create_decision_log(
    session_factory: sessionmaker[Session],
    agent: Agent,
    job: ServiceJob | None = None,
    **overrides: Any,
) -> AgentDecisionLog:
    values: dict[str, Any] = {
        "id": new_id(),
        "agent_id": agent.id,
        "job_id": job.id if job is not None else None,
        "prompt": "Summarize L2 fee markets",
        "response": "Fees are set by L1 data costs plus an execution component.",
        "model_used": "test-model",
        "tokens_used": 321,
        "execution_time_ms": 1500,
        "is_success": True,
    }
    values.update(overrides)
    return _insert(session_factory, AgentDecisionLog(**values))


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    """
    Provide a session factory bound to a fresh in-memory database.

    Example:
        ```python
        def test_deploy(session_factory):
            agent = create_test_agent(session_factory)
            with session_factory() as session:
                assert session.get(Agent, agent.id) is not None
        ```
    """
    engine = create_engine_from_url("sqlite://")
    create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seller_agent(session_factory: sessionmaker[Session]) -> Agent:
    """An ACTIVE agent owned by ``CREATOR_ADDRESS``."""
    return create_active_agent(session_factory, name="Seller Agent")


@pytest.fixture
def buyer_agent(session_factory: sessionmaker[Session]) -> Agent:
    """An ACTIVE agent owned by ``BUYER_CREATOR_ADDRESS``."""
    return create_active_agent(
        session_factory,
        name="Buyer Agent",
        creator_address=BUYER_CREATOR_ADDRESS,
        fid=4343,
        erc8004_token_id=8,
    )


@pytest.fixture
def offering(session_factory: sessionmaker[Session], seller_agent: Agent) -> ServiceOffering:
    return create_test_offering(session_factory, seller_agent)


# ============================================================================
# Fake Provider Fixtures
# ============================================================================


@pytest.fixture
def fake_wallets() -> Generator[FakeWalletProvider, None, None]:
    fake = FakeWalletProvider()
    yield fake
    fake.reset()


@pytest.fixture
def fake_social() -> Generator[FakeSocialProvider, None, None]:
    fake = FakeSocialProvider()
    yield fake
    fake.reset()


@pytest.fixture
def fake_minter() -> Generator[FakeIdentityMinter, None, None]:
    fake = FakeIdentityMinter()
    yield fake
    fake.reset()


@pytest.fixture
def fake_images() -> Generator[FakeImageGenerator, None, None]:
    fake = FakeImageGenerator()
    yield fake
    fake.reset()


@pytest.fixture
def fake_chain() -> Generator[FakeChainClient, None, None]:
    """
    Provide a FakeChainClient.

    Example:
        ```python
        def test_sweep(fake_chain):
            fake_chain.configure_read("getClaimable", response=(10**15, 0))
            ...
            assert fake_chain.writes("claimETH")
        ```
    """
    fake = FakeChainClient()
    yield fake
    fake.reset()


# ============================================================================
# Failure Injection
# ============================================================================


@pytest.fixture
def fail_writes() -> Generator[Any, None, None]:
    """
    Make flushes of one model fail, to check that a transaction rolls back.

    Call the fixture with a model class and a mapper event name
    (``"before_insert"`` or ``"before_update"``); every such write raises
    until the test ends.

    Example:
        ```python
        def test_rollback(fail_writes):
            fail_writes(ServiceOffering, "before_update")
            ...
        ```
    """
    installed: list[tuple[type, str, Any]] = []

    def install(model: type, identifier: str, error: Exception | None = None) -> None:
        def fail(mapper: Any, connection: Any, target: Any) -> None:
            raise error or RuntimeError(f"write to {model.__name__} failed")

        event.listen(model, identifier, fail)
        installed.append((model, identifier, fail))

    yield install
    for model, identifier, fn in installed:
        event.remove(model, identifier, fn)
