"""Reputation scoring and anchoring results."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ReputationResult:
    """Output of a reputation policy for one job execution."""

    new_score: int
    delta: int
    latency_bonus_applied: bool
    breakdown: str


@dataclass(frozen=True)
class MetadataEnvelope:
    """
    The public record of one job execution.

    Only identifiers, counters and the decision-log hash are carried; the
    envelope has no field that could hold a prompt or a response.
    """

    job_id: str
    agent_id: str
    is_success: bool
    execution_time_ms: int
    decision_log_hash: str
    reputation_delta: int
    new_reputation_score: int
    anchored_at: str
    version: str = "1.0"

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "jobId": self.job_id,
            "agentId": self.agent_id,
            "isSuccess": self.is_success,
            "executionTimeMs": self.execution_time_ms,
            "decisionLogHash": self.decision_log_hash,
            "reputationDelta": self.reputation_delta,
            "newReputationScore": self.new_reputation_score,
            "anchoredAt": self.anchored_at,
        }


@dataclass
class AnchorResult:
    """Result of anchoring one job; ``anchored_tx_hash`` is None when off-chain only."""

    decision_log_hash: str
    metadata_envelope: MetadataEnvelope
    reputation: ReputationResult
    anchored_tx_hash: str | None = None
