"""Results reported by the background workers."""

from dataclasses import dataclass


@dataclass
class SocialProvisionResult:
    """
    Outcome of one social-provisioning job.

    A result with ``fid`` None is a no-op: the agent was missing, already
    provisioned or not in a provisionable state.
    """

    agent_id: str
    fid: int | None = None
    username: str | None = None
    pfp_url: str | None = None
    banner_url: str | None = None
    genesis_cast_hash: str | None = None

    @property
    def skipped(self) -> bool:
        return self.fid is None


@dataclass
class FeeSweepResult:
    """Outcome of one fee distribution sweep."""

    distributions_made: int = 0
    claims_made: int = 0
    total_distributed: int = 0  # wei
    skipped_reason: str | None = None
