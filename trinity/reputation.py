"""
Reputation scoring policies.

The anchor pipeline treats scoring as a black box behind
:class:`ReputationPolicy`; :class:`AsymmetricReputationPolicy` is the
default, with every constant configurable.
"""

from dataclasses import dataclass
from typing import Protocol

from trinity.models import DEFAULT_STARTING_SCORE
from trinity.types.reputation import ReputationResult


class ReputationPolicy(Protocol):
    starting_score: int

    def score(
        self,
        current_score: int,
        is_success: bool,
        execution_time_ms: int,
        max_latency_ms: int,
    ) -> ReputationResult: ...


@dataclass(frozen=True)
class AsymmetricReputationPolicy:
    """
    Fixed reward for success, a larger fixed penalty for failure.

    A successful job finishing in under ``latency_bonus_threshold`` of the
    offering's latency budget earns ``latency_bonus`` on top. Scores are
    clamped to ``[min_score, max_score]``.
    """

    success_delta: int = 10
    failure_delta: int = -15
    latency_bonus: int = 5
    latency_bonus_threshold: float = 0.5
    min_score: int = 0
    max_score: int = 10_000
    starting_score: int = DEFAULT_STARTING_SCORE

    def score(
        self,
        current_score: int,
        is_success: bool,
        execution_time_ms: int,
        max_latency_ms: int,
    ) -> ReputationResult:
        delta = self.success_delta if is_success else self.failure_delta
        parts = [f"{'success' if is_success else 'failure'} {delta:+d}"]

        bonus = (
            is_success
            and max_latency_ms > 0
            and execution_time_ms < max_latency_ms * self.latency_bonus_threshold
        )
        if bonus:
            delta += self.latency_bonus
            parts.append(f"latency bonus {self.latency_bonus:+d} ({execution_time_ms}ms/{max_latency_ms}ms)")

        new_score = max(self.min_score, min(self.max_score, current_score + delta))
        parts.append(f"{current_score} -> {new_score}")
        return ReputationResult(
            new_score=new_score,
            delta=delta,
            latency_bonus_applied=bonus,
            breakdown=", ".join(parts),
        )


_TIERS = (
    (1_000, "bronze"),
    (3_000, "silver"),
    (6_000, "gold"),
    (9_000, "platinum"),
)


def reputation_tier(score: int) -> str:
    """Map a score to its display tier."""
    for ceiling, tier in _TIERS:
        if score < ceiling:
            return tier
    return "diamond"
