"""Trinity - agent lifecycle and reputation economy orchestrator."""

from trinity.anchor import ReputationAnchor
from trinity.config import Settings
from trinity.deployer import TrinityDeployer
from trinity.exceptions import (
    ChainError,
    ConfigurationError,
    ConflictError,
    DuplicateJobError,
    JobStalledError,
    ForbiddenError,
    NotFoundError,
    PaymentRequiredError,
    ProviderError,
    RateLimitedError,
    ServerError,
    TrinityError,
    UnauthorizedError,
    ValidationError,
)
from trinity.logging import configure_logging, get_logger
from trinity.marketplace import JobService
from trinity.models import AgentStatus, ServiceJobStatus, TrinityStatus
from trinity.payments import PaymentGate
from trinity.reputation import AsymmetricReputationPolicy, ReputationPolicy
from trinity.transport import AsyncHTTPTransport, RetryConfig

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Orchestration
    "TrinityDeployer",
    "JobService",
    "ReputationAnchor",
    "PaymentGate",
    # Reputation
    "ReputationPolicy",
    "AsymmetricReputationPolicy",
    # Status enums
    "AgentStatus",
    "TrinityStatus",
    "ServiceJobStatus",
    # Exceptions
    "TrinityError",
    "ConfigurationError",
    "UnauthorizedError",
    "PaymentRequiredError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "RateLimitedError",
    "ServerError",
    "ProviderError",
    "ChainError",
    "DuplicateJobError",
    "JobStalledError",
    # Config and transport
    "Settings",
    "AsyncHTTPTransport",
    "RetryConfig",
    # Logging
    "configure_logging",
    "get_logger",
]
