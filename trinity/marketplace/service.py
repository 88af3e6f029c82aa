"""
Service job operations.

Every operation that touches more than one row runs inside a single
``transaction``: creating a job bumps ``total_jobs``, completing one updates
the offering's latency statistics, rating one recomputes ``avg_rating``.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from trinity.anchor import ReputationAnchor
from trinity.database import transaction
from trinity.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from trinity.logging import get_logger
from trinity.marketplace.state_machine import EXPIRABLE_STATUSES, check_transition
from trinity.models import (
    Agent,
    AgentStatus,
    OfferingStatus,
    ServiceJob,
    ServiceJobStatus,
    ServiceOffering,
    utcnow,
)

logger = get_logger("marketplace")

PROTOCOL_FEE_BPS = 200
BPS_DENOMINATOR = 10_000

DEFAULT_TTL_MINUTES = 60
MAX_TTL_MINUTES = 7 * 24 * 60
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50
MIN_RATING = 1
MAX_RATING = 5

ROLE_BUYER = "buyer"
ROLE_SELLER = "seller"


def compute_protocol_fee(price_usdc: int, fee_bps: int = PROTOCOL_FEE_BPS) -> int:
    """Protocol fee in USDC micro-units, truncated."""
    return price_usdc * fee_bps // BPS_DENOMINATOR


def _same_address(a: str | None, b: str | None) -> bool:
    return a is not None and b is not None and a.lower() == b.lower()


def _latency_ms(job: ServiceJob, now: datetime) -> int:
    started = job.accepted_at or job.created_at
    return max(0, int((now - started).total_seconds() * 1000))


class JobService:
    """
    Creates, transitions and rates marketplace jobs.

    Args:
        session_factory: Session factory for the orchestrator database
        anchor: Reputation anchor run after a job reaches COMPLETED or
            DISPUTED (optional)
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        anchor: ReputationAnchor | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.anchor = anchor
        self.clock = clock

    # ===========================================
    # QUERIES
    # ===========================================

    def get_offering(self, slug: str) -> ServiceOffering:
        with self.session_factory() as session:
            offering = session.scalars(select(ServiceOffering).where(ServiceOffering.slug == slug)).first()
            if offering is None:
                raise NotFoundError("NOT_FOUND", f"Service offering {slug} not found")
            return offering

    def list_offerings(
        self,
        category: str | None = None,
        max_price_usdc: int | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[ServiceOffering]:
        """ACTIVE offerings, best rated first."""
        stmt = select(ServiceOffering).where(ServiceOffering.status == OfferingStatus.ACTIVE)
        if category:
            stmt = stmt.where(ServiceOffering.category == category)
        if max_price_usdc is not None:
            stmt = stmt.where(ServiceOffering.price_usdc <= max_price_usdc)
        stmt = stmt.order_by(
            ServiceOffering.avg_rating.desc().nulls_last(), ServiceOffering.completed_jobs.desc()
        ).limit(min(max(limit, 1), MAX_PAGE_SIZE))
        with self.session_factory() as session:
            return list(session.scalars(stmt))

    def get_job(self, job_id: str, caller_address: str) -> ServiceJob:
        """
        Fetch a job visible to the caller.

        Raises:
            NotFoundError: If the job does not exist
            ForbiddenError: If the caller controls neither the buyer nor the seller
        """
        with self.session_factory() as session:
            job = session.get(ServiceJob, job_id)
            if job is None:
                raise NotFoundError("NOT_FOUND", f"Service job {job_id} not found")
            buyer = session.get_one(Agent, job.buyer_agent_id)
            seller = session.get_one(Agent, job.seller_agent_id)
            if not (
                _same_address(buyer.creator_address, caller_address)
                or _same_address(seller.creator_address, caller_address)
            ):
                raise ForbiddenError("FORBIDDEN", "Not authorized to view this job")
            return job

    def list_jobs(
        self,
        caller_address: str,
        role: str | None = None,
        status: ServiceJobStatus | None = None,
        agent_id: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> tuple[list[ServiceJob], int]:
        """
        Jobs involving any agent the caller controls, newest first.

        Args:
            caller_address: Wallet address of the caller
            role: ``"buyer"`` or ``"seller"`` to restrict the perspective
            status: Only jobs in this status
            agent_id: Only jobs involving this agent (must be the caller's)
            limit: Page size, capped at 50
            offset: Rows to skip

        Returns:
            Tuple of (jobs, total matching)

        Raises:
            ForbiddenError: If ``agent_id`` belongs to someone else
        """
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        offset = max(offset, 0)

        with self.session_factory() as session:
            own_ids = list(
                session.scalars(
                    select(Agent.id).where(func.lower(Agent.creator_address) == caller_address.lower())
                )
            )
            if agent_id is not None:
                if agent_id not in own_ids:
                    raise ForbiddenError("FORBIDDEN", "Agent does not belong to you")
                own_ids = [agent_id]
            if not own_ids:
                return [], 0

            if role == ROLE_SELLER:
                condition = ServiceJob.seller_agent_id.in_(own_ids)
            elif role == ROLE_BUYER:
                condition = ServiceJob.buyer_agent_id.in_(own_ids)
            else:
                condition = or_(
                    ServiceJob.buyer_agent_id.in_(own_ids), ServiceJob.seller_agent_id.in_(own_ids)
                )
            stmt = select(ServiceJob).where(condition)
            if status is not None:
                stmt = stmt.where(ServiceJob.status == status)

            total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            jobs = list(
                session.scalars(stmt.order_by(ServiceJob.created_at.desc()).offset(offset).limit(limit))
            )
            return jobs, total

    # ===========================================
    # COMMANDS
    # ===========================================

    def create_job(
        self,
        offering_id: str,
        buyer_agent_id: str,
        caller_address: str,
        requirements: dict[str, Any] | None = None,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
        payment_tx_hash: str | None = None,
    ) -> ServiceJob:
        """
        Buy an offering, creating a job in CREATED status.

        Raises:
            ValidationError: If ``ttl_minutes`` is out of range
            NotFoundError: If the offering is missing or not ACTIVE, or the
                buyer agent is missing
            ForbiddenError: If the caller does not control the buyer agent
            ConflictError: If the buyer is not ACTIVE or is the seller
        """
        if not 1 <= ttl_minutes <= MAX_TTL_MINUTES:
            raise ValidationError("VALIDATION_ERROR", f"ttlMinutes must be between 1 and {MAX_TTL_MINUTES}")

        now = self.clock()
        with transaction(self.session_factory) as session:
            offering = session.get(ServiceOffering, offering_id)
            if offering is None or offering.status != OfferingStatus.ACTIVE:
                raise NotFoundError("NOT_FOUND", "Service offering not found or not ACTIVE")
            buyer = session.get(Agent, buyer_agent_id)
            if buyer is None:
                raise NotFoundError("NOT_FOUND", f"Buyer agent {buyer_agent_id} not found")
            if not _same_address(buyer.creator_address, caller_address):
                raise ForbiddenError("FORBIDDEN", "Only the agent creator can purchase services")
            if buyer.status != AgentStatus.ACTIVE:
                raise ConflictError("CONFLICT", "Buyer agent must be ACTIVE")
            if buyer.id == offering.seller_agent_id:
                raise ConflictError("CONFLICT", "An agent cannot purchase its own service")

            job = ServiceJob(
                offering_id=offering.id,
                buyer_agent_id=buyer.id,
                seller_agent_id=offering.seller_agent_id,
                status=ServiceJobStatus.CREATED,
                price_usdc=offering.price_usdc,
                requirements=requirements or {},
                payment_tx_hash=payment_tx_hash,
                expires_at=now + timedelta(minutes=ttl_minutes),
                created_at=now,
            )
            session.add(job)
            session.execute(
                update(ServiceOffering)
                .where(ServiceOffering.id == offering.id)
                .values(total_jobs=ServiceOffering.total_jobs + 1)
            )

        logger.info(
            "Job %s created for offering %s by agent %s (%d USDC units)",
            job.id, offering.slug, buyer_agent_id, job.price_usdc,
        )
        return job

    async def transition(
        self,
        job_id: str,
        caller_address: str,
        status: ServiceJobStatus,
        deliverables: dict[str, Any] | None = None,
        failed_reason: str | None = None,
    ) -> ServiceJob:
        """
        Move a job to ``status`` on behalf of the seller.

        Completing a job records its latency in the offering statistics in
        the same transaction, then books the protocol fee. Completed and
        disputed jobs are handed to the reputation anchor after commit.

        Args:
            job_id: Job to transition
            caller_address: Wallet address of the caller
            status: Target status
            deliverables: Seller output stored with the job
            failed_reason: Reason recorded for rejections and disputes

        Returns:
            The updated job

        Raises:
            NotFoundError: If the job does not exist
            ForbiddenError: If the caller does not control the seller agent
            ConflictError: If the transition is not allowed or the job expired
        """
        now = self.clock()
        with transaction(self.session_factory) as session:
            job = session.get(ServiceJob, job_id, with_for_update=True)
            if job is None:
                raise NotFoundError("NOT_FOUND", f"Service job {job_id} not found")
            seller = session.get_one(Agent, job.seller_agent_id)
            if not _same_address(seller.creator_address, caller_address):
                raise ForbiddenError("FORBIDDEN", "Only the service provider can update job status")

            previous = job.status
            check_transition(previous, status)
            if now > job.expires_at and status != ServiceJobStatus.REJECTED:
                raise ConflictError("JOB_EXPIRED", "Job has expired, cannot transition")

            job.status = status
            if deliverables is not None:
                job.deliverables = deliverables
            if failed_reason is not None:
                job.failed_reason = failed_reason

            latency = None
            if status == ServiceJobStatus.ACCEPTED:
                job.accepted_at = now
            elif status == ServiceJobStatus.DELIVERING:
                job.delivered_at = now
            elif status == ServiceJobStatus.COMPLETED:
                job.completed_at = now
                latency = _latency_ms(job, now)
                offering = session.get_one(ServiceOffering, job.offering_id, with_for_update=True)
                n = offering.completed_jobs
                offering.avg_latency_ms = ((offering.avg_latency_ms * n) + latency) / (n + 1)
                offering.completed_jobs = n + 1
            max_latency_ms = session.get_one(ServiceOffering, job.offering_id).max_latency_ms

        logger.info("Job %s transitioned %s -> %s", job_id, previous.value, status.value)

        if status == ServiceJobStatus.COMPLETED:
            self._book_protocol_fee(job)

        if self.anchor is not None and status in (ServiceJobStatus.COMPLETED, ServiceJobStatus.DISPUTED):
            execution_ms = latency if latency is not None else _latency_ms(job, now)
            await self.anchor.anchor(
                job.id,
                job.seller_agent_id,
                is_success=status == ServiceJobStatus.COMPLETED,
                execution_time_ms=execution_ms,
                max_latency_ms=max_latency_ms,
            )
        return job

    def _book_protocol_fee(self, job: ServiceJob) -> None:
        try:
            fee = compute_protocol_fee(job.price_usdc)
            with transaction(self.session_factory) as session:
                session.get_one(ServiceJob, job.id).buyback_allocation_usdc = fee
            job.buyback_allocation_usdc = fee
            logger.info("Protocol fee for job %s: %d USDC units allocated to buyback", job.id, fee)
        except Exception:
            logger.exception("Booking protocol fee for job %s failed", job.id)

    def rate(
        self,
        job_id: str,
        caller_address: str,
        rating: int,
        feedback: str | None = None,
    ) -> ServiceJob:
        """
        Rate a completed job on behalf of the buyer, once.

        Raises:
            ValidationError: If ``rating`` is outside 1..5
            NotFoundError: If the job does not exist
            ForbiddenError: If the caller does not control the buyer agent
            ConflictError: If the job is not COMPLETED or is already rated
        """
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError("VALIDATION_ERROR", f"rating must be between {MIN_RATING} and {MAX_RATING}")

        with transaction(self.session_factory) as session:
            job = session.get(ServiceJob, job_id, with_for_update=True)
            if job is None:
                raise NotFoundError("NOT_FOUND", f"Service job {job_id} not found")
            buyer = session.get_one(Agent, job.buyer_agent_id)
            if not _same_address(buyer.creator_address, caller_address):
                raise ForbiddenError("FORBIDDEN", "Only the buyer agent's creator can rate")
            if job.status != ServiceJobStatus.COMPLETED:
                raise ConflictError("CONFLICT", "Can only rate COMPLETED jobs")
            if job.buyer_rating is not None:
                raise ConflictError("ALREADY_RATED", "Job has already been rated")

            job.buyer_rating = rating
            job.buyer_feedback = feedback
            session.flush()

            avg = session.scalar(
                select(func.avg(ServiceJob.buyer_rating)).where(
                    ServiceJob.offering_id == job.offering_id,
                    ServiceJob.buyer_rating.is_not(None),
                )
            )
            session.get_one(ServiceOffering, job.offering_id).avg_rating = float(avg)

        logger.info("Job %s rated %d, offering %s average now %.2f", job_id, rating, job.offering_id, avg)
        return job

    def expire_stale_jobs(self, now: datetime | None = None) -> int:
        """
        Move overdue CREATED and ACCEPTED jobs to EXPIRED.

        Returns:
            Number of jobs expired
        """
        now = now or self.clock()
        with transaction(self.session_factory) as session:
            result = session.execute(
                update(ServiceJob)
                .where(ServiceJob.status.in_(list(EXPIRABLE_STATUSES)), ServiceJob.expires_at < now)
                .values(status=ServiceJobStatus.EXPIRED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            count = result.rowcount
        if count:
            logger.info("Expired %d stale jobs", count)
        return count
