"""HTTP API for agent deployment and the service marketplace."""

from trinity.api.app import create_app

__all__ = ["create_app"]
