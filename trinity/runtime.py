"""
Process wiring for the API and the background workers.

``build_runtime`` assembles the components the HTTP API needs from
:class:`~trinity.config.Settings`; ``run_workers`` runs the social
provisioner, its scanner, the fee sweep and the job expiry sweep until
stopped.
"""

import asyncio
import signal
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from trinity.anchor import ReputationAnchor
from trinity.chain.client import ChainClient
from trinity.chain.identity import IdentityMinter
from trinity.clients import (
    create_facilitator_client,
    create_image_client,
    create_neynar_client,
    create_wallet_client,
)
from trinity.config import Settings
from trinity.database import create_all, create_engine_from_url, make_session_factory
from trinity.deployer import TrinityDeployer
from trinity.logging import configure_logging, get_logger
from trinity.marketplace.service import JobService
from trinity.payments import PaymentGate
from trinity.queue import JobQueue, RepeatingTask, get_redis
from trinity.workers.fees import SWEEP_INTERVAL_SECONDS, FeeSweep
from trinity.workers.social import (
    QUEUE_NAME,
    SCAN_INTERVAL_SECONDS,
    SocialProvisioner,
    SocialScanner,
    create_social_worker,
)

logger = get_logger("runtime")

EXPIRY_INTERVAL_SECONDS = 60.0


@dataclass
class Runtime:
    """Components shared by the API request handlers."""

    settings: Settings
    session_factory: sessionmaker[Session]
    deployer: TrinityDeployer
    jobs: JobService
    payments: PaymentGate


def _chain_client(settings: Settings) -> ChainClient | None:
    if settings.demo_mode or not settings.chain.rpc_url:
        return None
    return ChainClient.from_config(settings.chain)


def build_runtime(
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> Runtime:
    """
    Wire the API components.

    In demo mode every external provider is replaced by
    :class:`~trinity.demo.DemoProviders` and nothing is written on-chain.

    Args:
        settings: Settings (defaults to ``Settings.from_env()``)
        session_factory: Session factory to use instead of one built from
            ``settings.database_url``

    Raises:
        ConfigurationError: If live mode lacks the chain RPC URL
    """
    settings = settings or Settings.from_env()
    if session_factory is None:
        engine = create_engine_from_url(settings.database_url)
        create_all(engine)
        session_factory = make_session_factory(engine)

    chain = _chain_client(settings)
    if settings.demo_mode:
        deployer = TrinityDeployer.demo(session_factory)
    else:
        deployer = TrinityDeployer(
            session_factory,
            wallets=create_wallet_client(settings.wallets),
            social=create_neynar_client(settings.social, settings.chain),
            identities=IdentityMinter(chain or ChainClient.from_config(settings.chain), settings.chain.registry_address),
        )

    anchor = ReputationAnchor(
        session_factory,
        chain=chain,
        registry_address=settings.chain.registry_address,
        demo_mode=settings.demo_mode,
    )
    return Runtime(
        settings=settings,
        session_factory=session_factory,
        deployer=deployer,
        jobs=JobService(session_factory, anchor=anchor),
        payments=PaymentGate(settings.payments, create_facilitator_client(settings.payments)),
    )


async def run_workers(settings: Settings, stop: asyncio.Event) -> None:
    """Run every background worker until ``stop`` is set."""
    engine = create_engine_from_url(settings.database_url)
    create_all(engine)
    session_factory = make_session_factory(engine)

    redis = get_redis(settings.redis_url)
    queue = JobQueue(redis, QUEUE_NAME)

    neynar = create_neynar_client(settings.social, settings.chain)
    provisioner = SocialProvisioner(
        session_factory,
        social=neynar,
        images=create_image_client(settings.images),
        casts=neynar,
    )
    scanner = SocialScanner(session_factory, queue)
    sweep = FeeSweep(
        session_factory,
        chain=_chain_client(settings),
        fee_splitter_address=settings.chain.fee_splitter_address,
        scout_fund_address=settings.chain.scout_fund_address,
    )
    jobs = JobService(session_factory)

    async def expire_jobs() -> None:
        jobs.expire_stale_jobs()

    tasks = [
        create_social_worker(queue, provisioner).run(stop),
        RepeatingTask("social-scan", SCAN_INTERVAL_SECONDS, scanner.scan).run(stop),
        RepeatingTask("fee-sweep", SWEEP_INTERVAL_SECONDS, sweep.run).run(stop, run_immediately=False),
        RepeatingTask("job-expiry", EXPIRY_INTERVAL_SECONDS, expire_jobs).run(stop),
    ]
    logger.info("Workers started (demo mode: %s)", settings.demo_mode)
    try:
        await asyncio.gather(*tasks)
    finally:
        await redis.aclose()
        engine.dispose()
        logger.info("Workers stopped")


def main() -> None:
    """Entry point for the ``trinity-worker`` command."""
    configure_logging()
    settings = Settings.from_env()
    stop = asyncio.Event()

    async def _run() -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        await run_workers(settings, stop)

    asyncio.run(_run())
