"""Shared test configuration."""

pytest_plugins = ["trinity.testing.conftest"]
