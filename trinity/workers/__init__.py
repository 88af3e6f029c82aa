"""Background workers: social identity provisioning and fee sweeps."""

from trinity.workers.fees import FeeSweep
from trinity.workers.social import SocialProvisioner, SocialScanner, create_social_worker

__all__ = [
    "FeeSweep",
    "SocialProvisioner",
    "SocialScanner",
    "create_social_worker",
]
