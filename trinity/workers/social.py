"""
Social identity worker.

Completes the social leg of the deployment saga for agents whose wallet was
provisioned but whose social account was not. A periodic scanner enqueues
one job per agent, keyed ``social-{agentId}`` so that the queue itself
rejects duplicates; a single-concurrency, rate-limited worker processes
them.
"""

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, sessionmaker

from trinity.capabilities import CreateSocialAccount, GenerateImage, PublishCast
from trinity.config import missing_social_credentials
from trinity.database import transaction
from trinity.exceptions import DuplicateJobError
from trinity.logging import get_logger, truncate_hash
from trinity.models import Agent, AgentStatus, TrinityStatus
from trinity.profile import (
    build_banner_prompt,
    build_bio,
    build_genesis_cast,
    build_pfp_prompt,
    display_name,
    sanitize_username,
)
from trinity.queue import JobOptions, JobQueue, QueueJob, RateLimiter, Worker
from trinity.types.workers import SocialProvisionResult

logger = get_logger("workers.social")

QUEUE_NAME = "social-provisioning"
PROVISION_JOB_NAME = "provision-social"
SCAN_INTERVAL_SECONDS = 120.0
MAX_ATTEMPTS = 5
INITIAL_BACKOFF_SECONDS = 30.0
RATE_LIMIT_MAX = 1
RATE_LIMIT_DURATION_SECONDS = 15.0

PFP_SIZE = (512, 512)
BANNER_SIZE = (1536, 512)


def provision_job_id(agent_id: str) -> str:
    return f"social-{agent_id}"


def provision_job_options() -> JobOptions:
    return JobOptions(
        attempts=MAX_ATTEMPTS,
        backoff_delay=INITIAL_BACKOFF_SECONDS,
        backoff_type="exponential",
    )


class SocialProvisioner:
    """
    Processes one social-provisioning job.

    Args:
        session_factory: Session factory for the orchestrator database
        social: Social account creation capability
        images: Image generation capability (optional; no images without it)
        casts: Cast publishing capability (optional; no genesis cast without it)
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        social: CreateSocialAccount,
        images: GenerateImage | None = None,
        casts: PublishCast | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.social = social
        self.images = images
        self.casts = casts

    async def handle(self, job: QueueJob) -> SocialProvisionResult:
        """Queue processor entry point."""
        agent_id = job.data["agentId"]
        logger.info(
            "Provisioning social identity for %s (attempt %d/%d)",
            agent_id, job.attempts_made, job.options.attempts,
        )
        return await self.process(agent_id)

    async def process(self, agent_id: str) -> SocialProvisionResult:
        """
        Provision the social identity of one agent.

        Image generation and the genesis cast degrade gracefully; account
        creation failures propagate so the queue retries the job.

        Args:
            agent_id: Agent to provision

        Returns:
            SocialProvisionResult, skipped when the agent is missing, already
            provisioned or not ``DEPLOYING`` with a wallet
        """
        with self.session_factory() as session:
            agent = session.get(Agent, agent_id)
            if agent is None:
                logger.warning("Agent %s not found, skipping social provisioning", agent_id)
                return SocialProvisionResult(agent_id=agent_id)
            if agent.has_social_identity:
                logger.info("Agent %s already has a social identity (fid %s)", agent_id, agent.fid)
                if agent.status == AgentStatus.DEPLOYING:
                    # An earlier attempt stored the account but never activated the agent.
                    agent.status = AgentStatus.ACTIVE
                    session.commit()
                    logger.info("Agent %s is ACTIVE", agent_id)
                return SocialProvisionResult(agent_id=agent_id)
            if agent.status != AgentStatus.DEPLOYING or agent.wallet_id is None:
                logger.warning(
                    "Agent %s not provisionable (status %s, wallet %s)",
                    agent_id, agent.status.value, agent.wallet_id is not None,
                )
                return SocialProvisionResult(agent_id=agent_id)
            session.expunge(agent)

        persona = agent.persona if isinstance(agent.persona, dict) else {}

        # Step 1/5: profile picture
        pfp_url = await self._generate(
            "profile image", agent_id, build_pfp_prompt(agent.description, persona), PFP_SIZE
        )

        # Step 2/5: banner
        banner_url = await self._generate("banner", agent_id, build_banner_prompt(persona), BANNER_SIZE)

        # Step 3/5: account
        account = await self.social.create_account(
            agent_id=agent.id,
            username=sanitize_username(agent.name),
            display_name=display_name(agent.name),
            bio=build_bio(agent.description),
            pfp_url=pfp_url,
        )
        logger.info(
            "Created social account for %s: fid %d, @%s, signer %s",
            agent_id, account.fid, account.username, truncate_hash(account.signer_uuid),
        )

        # Step 4/5: persist, unless the deployer recorded an account meanwhile
        with transaction(self.session_factory) as session:
            stored = session.get_one(Agent, agent_id)
            if stored.has_social_identity or stored.status != AgentStatus.DEPLOYING:
                logger.warning(
                    "Agent %s changed while its account was created (fid %s, status %s), "
                    "keeping the stored identity and discarding fid %d",
                    agent_id, stored.fid, stored.status.value, account.fid,
                )
                return SocialProvisionResult(agent_id=agent_id)
            stored.fid = account.fid
            stored.signer_uuid = account.signer_uuid
            stored.farcaster_username = account.username
            stored.custody_address = account.custody_address
            if pfp_url:
                stored.pfp_url = pfp_url
            if banner_url:
                stored.banner_url = banner_url
            if stored.trinity_status == TrinityStatus.CDP_ONLY:
                stored.trinity_status = TrinityStatus.CDP_FARCASTER

        # Step 5/5: genesis cast
        cast_hash = None
        if self.casts is not None:
            try:
                cast_hash = await self.casts.publish_cast(account.signer_uuid, build_genesis_cast(agent.name))
                logger.info("Genesis cast for %s published: %s", agent_id, truncate_hash(cast_hash))
            except Exception as e:
                logger.warning("Genesis cast for %s failed: %s", agent_id, e)

        with transaction(self.session_factory) as session:
            session.get_one(Agent, agent_id).status = AgentStatus.ACTIVE

        logger.info("Social identity provisioned, agent %s is ACTIVE", agent_id)
        return SocialProvisionResult(
            agent_id=agent_id,
            fid=account.fid,
            username=account.username,
            pfp_url=pfp_url,
            banner_url=banner_url,
            genesis_cast_hash=cast_hash,
        )

    async def _generate(self, kind: str, agent_id: str, prompt: str, size: tuple[int, int]) -> str | None:
        if self.images is None:
            return None
        try:
            url = await self.images.generate_image(prompt, size[0], size[1])
        except Exception as e:
            logger.warning("Generating %s for %s failed, continuing without it: %s", kind, agent_id, e)
            return None
        logger.info("Generated %s for %s", kind, agent_id)
        return url

    async def on_failed(self, job: QueueJob, error: Exception, final: bool) -> None:
        """Move the agent to ``FAILED`` once the job has used its last attempt."""
        if not final:
            return
        agent_id = job.data.get("agentId")
        if not agent_id:
            return
        with transaction(self.session_factory) as session:
            agent = session.get(Agent, agent_id)
            if agent is not None:
                agent.status = AgentStatus.FAILED
        logger.error("Social provisioning for %s permanently failed: %s", agent_id, error)


class SocialScanner:
    """
    Finds agents awaiting a social identity and enqueues a job for each.

    Args:
        session_factory: Session factory for the orchestrator database
        queue: The social-provisioning queue
        missing_credentials: Credentials absent from the environment; while
            non-empty the scanner still scans and logs but enqueues nothing
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        queue: JobQueue,
        missing_credentials: list[str] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.queue = queue
        self.missing_credentials = (
            missing_social_credentials() if missing_credentials is None else missing_credentials
        )
        if self.missing_credentials:
            logger.warning(
                "Social provisioning PAUSED, missing environment variables: %s",
                ", ".join(self.missing_credentials),
            )

    @property
    def enabled(self) -> bool:
        return not self.missing_credentials

    def pending_agents(self) -> list[tuple[str, str]]:
        """Return ``(id, name)`` of every agent awaiting a social identity."""
        stmt = select(Agent.id, Agent.name).where(
            Agent.status == AgentStatus.DEPLOYING,
            Agent.wallet_id.is_not(None),
            or_(Agent.fid.is_(None), Agent.signer_uuid.is_(None)),
        )
        with self.session_factory() as session:
            return [(row.id, row.name) for row in session.execute(stmt)]

    async def scan(self) -> int:
        """
        Enqueue a provisioning job for every pending agent.

        Returns:
            Number of jobs enqueued
        """
        agents = self.pending_agents()
        if not agents:
            return 0
        if not self.enabled:
            logger.warning(
                "%d agents awaiting social provisioning but the worker is PAUSED (missing %s)",
                len(agents), ", ".join(self.missing_credentials),
            )
            return 0

        enqueued = 0
        for agent_id, name in agents:
            try:
                await self.queue.add(
                    PROVISION_JOB_NAME,
                    {"agentId": agent_id, "agentName": name},
                    job_id=provision_job_id(agent_id),
                    options=provision_job_options(),
                )
            except DuplicateJobError:
                logger.debug("Social provisioning job for %s already queued", agent_id)
                continue
            enqueued += 1

        if enqueued:
            logger.info("Enqueued %d of %d pending social provisioning jobs", enqueued, len(agents))
        return enqueued


def create_social_worker(queue: JobQueue, provisioner: SocialProvisioner) -> Worker:
    """Single-concurrency worker limited to one job per 15 seconds."""
    return Worker(
        queue,
        provisioner.handle,
        limiter=RateLimiter(queue, RATE_LIMIT_MAX, RATE_LIMIT_DURATION_SECONDS),
        on_failed=provisioner.on_failed,
    )
