"""
Pytest plugin for orchestrator testing fixtures.

To use these fixtures in your tests, add this to your conftest.py:

    pytest_plugins = ["trinity.testing.conftest"]
"""

from trinity.testing.fixtures import (
    buyer_agent,
    fail_writes,
    fake_chain,
    fake_images,
    fake_minter,
    fake_social,
    fake_wallets,
    offering,
    seller_agent,
    session_factory,
)

__all__ = [
    "session_factory",
    "seller_agent",
    "buyer_agent",
    "offering",
    "fake_wallets",
    "fake_social",
    "fake_minter",
    "fake_images",
    "fake_chain",
    "fail_writes",
]
