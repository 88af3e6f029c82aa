"""Fakes, factories and pytest fixtures for testing orchestrator code."""

from trinity.testing.fixtures import (
    BUYER_CREATOR_ADDRESS,
    CREATOR_ADDRESS,
    create_active_agent,
    create_decision_log,
    create_test_agent,
    create_test_job,
    create_test_offering,
)
from trinity.testing.mock import (
    FakeChainClient,
    FakeFacilitator,
    FakeIdentityMinter,
    FakeImageGenerator,
    FakeSocialProvider,
    FakeWalletProvider,
    MockCall,
    MockResponse,
)

__all__ = [
    # Fakes
    "FakeWalletProvider",
    "FakeSocialProvider",
    "FakeIdentityMinter",
    "FakeImageGenerator",
    "FakeChainClient",
    "FakeFacilitator",
    "MockCall",
    "MockResponse",
    # Factories
    "create_test_agent",
    "create_active_agent",
    "create_test_offering",
    "create_test_job",
    "create_decision_log",
    "CREATOR_ADDRESS",
    "BUYER_CREATOR_ADDRESS",
]
