"""Marketplace client used by agents buying services from other agents."""

import asyncio
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from trinity.exceptions import TrinityError
from trinity.logging import get_logger
from trinity.types.services import ServiceJobInfo, ServiceOfferingInfo

if TYPE_CHECKING:
    from trinity.transport import AsyncHTTPTransport

logger = get_logger("clients.marketplace")

TERMINAL_JOB_STATUSES = frozenset({"COMPLETED", "REJECTED", "EXPIRED", "DISPUTED"})
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_WAIT_TIMEOUT = 60.0


class JobWaitTimeout(TrinityError):
    """Raised when a job does not reach a terminal status in time."""

    status_code = 504

    def __init__(self, job_id: str, last_status: str, timeout: float) -> None:
        super().__init__(
            "JOB_WAIT_TIMEOUT",
            f"Job {job_id} still {last_status} after {timeout:.0f}s",
        )
        self.job_id = job_id
        self.last_status = last_status


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _job_from_dict(data: dict[str, Any]) -> ServiceJobInfo:
    return ServiceJobInfo(
        job_id=data["id"],
        offering_id=data["offeringId"],
        buyer_agent_id=data["buyerAgentId"],
        seller_agent_id=data["sellerAgentId"],
        status=data["status"],
        price_usdc=int(data["priceUsdc"]),
        expires_at=_parse_datetime(data["expiresAt"]),  # type: ignore[arg-type]
        requirements=data.get("requirements") or {},
        deliverables=data.get("deliverables"),
        buyer_rating=data.get("buyerRating"),
        failed_reason=data.get("failedReason"),
        completed_at=_parse_datetime(data.get("completedAt")),
    )


def _offering_from_dict(data: dict[str, Any]) -> ServiceOfferingInfo:
    return ServiceOfferingInfo(
        offering_id=data["id"],
        slug=data["slug"],
        name=data["name"],
        category=data["category"],
        price_usdc=int(data["priceUsdc"]),
        max_latency_ms=int(data["maxLatencyMs"]),
        seller_agent_id=data["sellerAgentId"],
        completed_jobs=int(data.get("completedJobs", 0)),
        avg_rating=data.get("avgRating"),
    )


class ServiceClient:
    """Client for the service marketplace HTTP API."""

    def __init__(self, transport: "AsyncHTTPTransport") -> None:
        """
        Initialize the service client.

        Args:
            transport: Transport bound to the marketplace API, carrying the
                caller's wallet authentication headers
        """
        self.transport = transport

    async def discover(
        self, category: str | None = None, max_price_usdc: int | None = None, limit: int = 20
    ) -> list[ServiceOfferingInfo]:
        params: dict[str, Any] = {"limit": limit}
        if category:
            params["category"] = category
        if max_price_usdc is not None:
            params["maxPrice"] = max_price_usdc
        response = await self.transport.request("GET", "/services", params=params)
        return [_offering_from_dict(item) for item in response.get("data", [])]

    async def get_service(self, slug: str) -> ServiceOfferingInfo:
        response = await self.transport.request("GET", f"/services/{slug}")
        return _offering_from_dict(response["data"])

    async def purchase(
        self,
        offering_id: str,
        buyer_agent_id: str,
        requirements: dict[str, Any] | None = None,
        ttl_minutes: int = 60,
        payment_header: str | None = None,
    ) -> ServiceJobInfo:
        """
        Buy a service, creating a job in CREATED status.

        Args:
            offering_id: Offering to buy
            buyer_agent_id: Agent paying for the job
            requirements: Opaque job input for the seller
            ttl_minutes: Minutes until the job expires
            payment_header: Encoded x402 payment, sent as ``X-PAYMENT``
        """
        headers = {"X-PAYMENT": payment_header} if payment_header else None
        response = await self.transport.request(
            "POST",
            "/services/jobs",
            headers=headers,
            body={
                "offeringId": offering_id,
                "buyerAgentId": buyer_agent_id,
                "requirements": requirements or {},
                "ttlMinutes": ttl_minutes,
            },
        )
        return _job_from_dict(response["data"])

    async def get_job(self, job_id: str) -> ServiceJobInfo:
        response = await self.transport.request("GET", f"/services/jobs/{job_id}")
        return _job_from_dict(response["data"])

    async def rate_job(self, job_id: str, rating: int, feedback: str | None = None) -> ServiceJobInfo:
        body: dict[str, Any] = {"rating": rating}
        if feedback:
            body["feedback"] = feedback
        response = await self.transport.request("POST", f"/services/jobs/{job_id}/rate", body=body)
        return _job_from_dict(response["data"])

    async def wait_for_completion(
        self,
        job_id: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
    ) -> ServiceJobInfo:
        """
        Poll a job until it reaches a terminal status.

        Args:
            job_id: Job to watch
            poll_interval: Seconds between polls
            timeout: Overall seconds before giving up

        Returns:
            The job in COMPLETED, REJECTED, EXPIRED or DISPUTED status

        Raises:
            JobWaitTimeout: If the job is still open when the timeout elapses
        """
        deadline = time.monotonic() + timeout
        while True:
            job = await self.get_job(job_id)
            if job.status in TERMINAL_JOB_STATUSES:
                return job

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise JobWaitTimeout(job_id, job.status, timeout)

            logger.debug("Job %s is %s, polling again", job_id, job.status)
            await asyncio.sleep(min(poll_interval, remaining))
