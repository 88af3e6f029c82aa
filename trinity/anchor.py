"""
Reputation anchoring.

Turns the outcome of a job into a reputation delta and a tamper-evident
commitment to the private decision log behind it. The decision log is
canonicalized and hashed; only the hash, counters and identifiers leave the
database, first in the metadata envelope and then, when configured, on the
ERC-8004 registry.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from trinity.canonicalize import canonical_hash
from trinity.chain.abis import ERC8004_REGISTRY_ABI
from trinity.chain.client import ChainClient
from trinity.database import transaction
from trinity.logging import get_logger, truncate_hash
from trinity.models import AgentDecisionLog, ERC8004Identity, utcnow
from trinity.reputation import AsymmetricReputationPolicy, ReputationPolicy
from trinity.types.reputation import AnchorResult, MetadataEnvelope

logger = get_logger("anchor")


def iso_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def canonical_decision_log(log: AgentDecisionLog) -> dict[str, Any]:
    """The fields of a decision log that its hash commits to."""
    return {
        "agentId": log.agent_id,
        "jobId": log.job_id,
        "prompt": log.prompt,
        "response": log.response,
        "modelUsed": log.model_used,
        "tokensUsed": log.tokens_used,
        "executionTimeMs": log.execution_time_ms,
        "isSuccess": log.is_success,
        "errorMessage": log.error_message,
        "createdAt": iso_timestamp(log.created_at),
    }


def hash_decision_log(log: AgentDecisionLog) -> str:
    return canonical_hash(canonical_decision_log(log))


class ReputationAnchor:
    """
    Hashes decision logs, updates reputation and anchors both on-chain.

    Args:
        session_factory: Session factory for the orchestrator database
        policy: Scoring policy (defaults to :class:`AsymmetricReputationPolicy`)
        chain: Chain client with the deployer key; None disables on-chain anchoring
        registry_address: ERC-8004 registry; None disables on-chain anchoring
        demo_mode: Never anchor on-chain when set
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        policy: ReputationPolicy | None = None,
        chain: ChainClient | None = None,
        registry_address: str | None = None,
        demo_mode: bool = False,
    ) -> None:
        self.session_factory = session_factory
        self.policy = policy or AsymmetricReputationPolicy()
        self.chain = chain
        self.registry_address = registry_address
        self.demo_mode = demo_mode

    @property
    def on_chain_enabled(self) -> bool:
        return not self.demo_mode and self.chain is not None and bool(self.registry_address)

    async def anchor(
        self,
        job_id: str,
        agent_id: str,
        is_success: bool,
        execution_time_ms: int,
        max_latency_ms: int,
    ) -> AnchorResult | None:
        """
        Anchor the outcome of one job.

        Never raises. Returns None when the job has no decision log or when
        anchoring failed before the off-chain update committed; on-chain
        failures only leave ``anchored_tx_hash`` unset.

        Args:
            job_id: Job whose outcome is anchored
            agent_id: Agent that executed the job
            is_success: Whether the job succeeded
            execution_time_ms: Observed latency
            max_latency_ms: The offering's latency budget

        Returns:
            AnchorResult, or None
        """
        try:
            result, token_id, log_id = self._anchor_off_chain(
                job_id, agent_id, is_success, execution_time_ms, max_latency_ms
            )
        except Exception:
            logger.exception("Anchoring job %s for agent %s failed", job_id, agent_id)
            return None
        if result is None:
            return None

        if not self.on_chain_enabled:
            logger.debug("On-chain anchoring disabled, hash for job %s kept off-chain", job_id)
        elif token_id is None:
            logger.debug("Agent %s has no identity token, skipping on-chain anchor", agent_id)
        else:
            try:
                result.anchored_tx_hash = await self._anchor_on_chain(
                    log_id, token_id, result.decision_log_hash, is_success, result.reputation.new_score
                )
            except Exception as e:
                logger.warning("On-chain anchoring failed for job %s, hash kept off-chain: %s", job_id, e)

        return result

    def _anchor_off_chain(
        self,
        job_id: str,
        agent_id: str,
        is_success: bool,
        execution_time_ms: int,
        max_latency_ms: int,
    ) -> tuple[AnchorResult | None, int | None, str | None]:
        with transaction(self.session_factory) as session:
            log = session.scalars(
                select(AgentDecisionLog)
                .where(AgentDecisionLog.job_id == job_id, AgentDecisionLog.agent_id == agent_id)
                .order_by(AgentDecisionLog.created_at.desc())
                .limit(1)
            ).first()
            if log is None:
                logger.warning("No decision log for job %s, skipping anchor", job_id)
                return None, None, None

            identity = session.scalars(
                select(ERC8004Identity).where(ERC8004Identity.agent_id == agent_id)
            ).first()
            current = identity.reputation_score if identity is not None else self.policy.starting_score
            reputation = self.policy.score(current, is_success, execution_time_ms, max_latency_ms)
            logger.info("Reputation for agent %s: %s", agent_id, reputation.breakdown)

            decision_log_hash = hash_decision_log(log)
            envelope = MetadataEnvelope(
                job_id=job_id,
                agent_id=agent_id,
                is_success=is_success,
                execution_time_ms=execution_time_ms,
                decision_log_hash=decision_log_hash,
                reputation_delta=reputation.delta,
                new_reputation_score=reputation.new_score,
                anchored_at=iso_timestamp(utcnow()),
            )

            log.decision_log_hash = decision_log_hash
            if identity is not None:
                identity.reputation_score = reputation.new_score
            token_id = identity.token_id if identity is not None else None
            log_id = log.id

        logger.info(
            "Decision log for job %s hashed (%s), score %d (%+d)",
            job_id, truncate_hash(decision_log_hash), reputation.new_score, reputation.delta,
        )
        result = AnchorResult(
            decision_log_hash=decision_log_hash,
            metadata_envelope=envelope,
            reputation=reputation,
        )
        return result, token_id, log_id

    async def _anchor_on_chain(
        self,
        log_id: str,
        token_id: int,
        decision_log_hash: str,
        is_success: bool,
        new_score: int,
    ) -> str:
        validation_tx = await self.chain.write_contract(
            self.registry_address,
            ERC8004_REGISTRY_ABI,
            "addValidation",
            (token_id, decision_log_hash, is_success),
        )
        reputation_tx = await self.chain.write_contract(
            self.registry_address,
            ERC8004_REGISTRY_ABI,
            "updateReputation",
            (token_id, new_score),
        )
        await self.chain.wait_for_transaction(validation_tx)
        await self.chain.wait_for_transaction(reputation_tx)

        with transaction(self.session_factory) as session:
            log = session.get_one(AgentDecisionLog, log_id)
            log.anchored_tx_hash = validation_tx
            log.anchored_at = utcnow()

        logger.info(
            "Anchored token %d on-chain: validation %s, reputation %s",
            token_id, truncate_hash(validation_tx), truncate_hash(reputation_tx),
        )
        return validation_tx
