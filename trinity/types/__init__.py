"""Data model types shared across the orchestrator."""

from trinity.types.identity import (
    DeployResult,
    IdentityMintResult,
    SocialAccountResult,
    WalletResult,
)
from trinity.types.payments import (
    PaymentRequirement,
    PaymentVerification,
    SignedPayment,
    TransferAuthorization,
)
from trinity.types.reputation import AnchorResult, MetadataEnvelope, ReputationResult
from trinity.types.services import ServiceJobInfo, ServiceOfferingInfo
from trinity.types.workers import FeeSweepResult, SocialProvisionResult

__all__ = [
    # Identity provisioning
    "WalletResult",
    "SocialAccountResult",
    "IdentityMintResult",
    "DeployResult",
    # Payments
    "PaymentRequirement",
    "TransferAuthorization",
    "SignedPayment",
    "PaymentVerification",
    # Reputation
    "ReputationResult",
    "MetadataEnvelope",
    "AnchorResult",
    # Marketplace
    "ServiceOfferingInfo",
    "ServiceJobInfo",
    # Workers
    "SocialProvisionResult",
    "FeeSweepResult",
]
