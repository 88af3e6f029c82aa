"""
API Routes - REST endpoints for agent deployment and the service marketplace.

Every route authenticates the caller by wallet signature; responses wrap
their payload as ``{"data": ...}``.
"""

from typing import Any, Literal

from fastapi import APIRouter, Depends, Header, Query, Request

from trinity.api.auth import verify_wallet_signature
from trinity.api.schemas import (
    CreateJobRequest,
    RateJobRequest,
    TransitionJobRequest,
    job_to_dict,
    offering_to_dict,
)
from trinity.exceptions import ForbiddenError, NotFoundError
from trinity.models import Agent, OfferingStatus, ServiceJobStatus, ServiceOffering
from trinity.runtime import Runtime

router = APIRouter(tags=["trinity"])


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def caller_address(
    runtime: Runtime = Depends(get_runtime),
    x_wallet_address: str | None = Header(default=None),
    x_wallet_signature: str | None = Header(default=None),
    x_wallet_message: str | None = Header(default=None),
) -> str:
    return verify_wallet_signature(
        x_wallet_address,
        x_wallet_signature,
        x_wallet_message,
        demo_mode=runtime.settings.demo_mode,
    )


# ----------------------------------------------------
# Agents
# ----------------------------------------------------


@router.post("/agents/{agent_id}/deploy")
async def deploy_agent(
    agent_id: str,
    runtime: Runtime = Depends(get_runtime),
    caller: str = Depends(caller_address),
) -> dict[str, Any]:
    """
    Run (or resume) identity provisioning for an agent.

    Step failures are reported in ``errors`` with status 200; call again to
    resume from the last completed step.
    """
    with runtime.session_factory() as session:
        agent = session.get(Agent, agent_id)
        if agent is None:
            raise NotFoundError("NOT_FOUND", f"Agent {agent_id} not found")
        if agent.creator_address.lower() != caller.lower():
            raise ForbiddenError("FORBIDDEN", "Only the agent creator can deploy it")

    result = await runtime.deployer.deploy(agent_id)
    return {"data": result.to_dict()}


# ----------------------------------------------------
# Service jobs
# ----------------------------------------------------


@router.post("/services/jobs", status_code=201)
async def create_job(
    body: CreateJobRequest,
    request: Request,
    runtime: Runtime = Depends(get_runtime),
    caller: str = Depends(caller_address),
) -> dict[str, Any]:
    """Purchase a service. Paid offerings require an ``X-PAYMENT`` header."""
    with runtime.session_factory() as session:
        offering = session.get(ServiceOffering, body.offering_id)
        if offering is None or offering.status != OfferingStatus.ACTIVE:
            raise NotFoundError("NOT_FOUND", "Service offering not found or not ACTIVE")
        price, slug = offering.price_usdc, offering.slug

    payment_tx_hash = None
    if price > 0:
        payment = await runtime.payments.check(request.headers, price, f"Service job: {slug}")
        payment_tx_hash = payment.tx_hash

    job = runtime.jobs.create_job(
        offering_id=body.offering_id,
        buyer_agent_id=body.buyer_agent_id,
        caller_address=caller,
        requirements=body.requirements,
        ttl_minutes=body.ttl_minutes,
        payment_tx_hash=payment_tx_hash,
    )
    return {"data": job_to_dict(job)}


@router.get("/services/jobs")
def list_jobs(
    role: Literal["buyer", "seller"] | None = None,
    status: ServiceJobStatus | None = None,
    agent_id: str | None = Query(default=None, alias="agentId"),
    limit: int = Query(default=20, ge=1, le=50),
    offset: int = Query(default=0, ge=0),
    runtime: Runtime = Depends(get_runtime),
    caller: str = Depends(caller_address),
) -> dict[str, Any]:
    jobs, total = runtime.jobs.list_jobs(
        caller, role=role, status=status, agent_id=agent_id, limit=limit, offset=offset
    )
    return {
        "data": {
            "jobs": [job_to_dict(job) for job in jobs],
            "total": total,
            "limit": limit,
            "offset": offset,
        }
    }


@router.get("/services/jobs/{job_id}")
def get_job(
    job_id: str,
    runtime: Runtime = Depends(get_runtime),
    caller: str = Depends(caller_address),
) -> dict[str, Any]:
    return {"data": job_to_dict(runtime.jobs.get_job(job_id, caller))}


@router.patch("/services/jobs/{job_id}")
async def transition_job(
    job_id: str,
    body: TransitionJobRequest,
    runtime: Runtime = Depends(get_runtime),
    caller: str = Depends(caller_address),
) -> dict[str, Any]:
    """Move a job through its lifecycle; only the seller's creator may do this."""
    job = await runtime.jobs.transition(
        job_id,
        caller,
        body.status,
        deliverables=body.deliverables,
        failed_reason=body.failed_reason,
    )
    return {"data": job_to_dict(job)}


@router.post("/services/jobs/{job_id}/rate")
def rate_job(
    job_id: str,
    body: RateJobRequest,
    runtime: Runtime = Depends(get_runtime),
    caller: str = Depends(caller_address),
) -> dict[str, Any]:
    job = runtime.jobs.rate(job_id, caller, body.rating, body.feedback)
    return {"data": job_to_dict(job)}


# ----------------------------------------------------
# Service offerings
# ----------------------------------------------------


@router.get("/services")
def list_services(
    category: str | None = None,
    max_price: int | None = Query(default=None, alias="maxPrice", ge=0),
    limit: int = Query(default=20, ge=1, le=50),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    offerings = runtime.jobs.list_offerings(category=category, max_price_usdc=max_price, limit=limit)
    return {"data": [offering_to_dict(o) for o in offerings]}


@router.get("/services/{slug}")
def get_service(slug: str, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return {"data": offering_to_dict(runtime.jobs.get_offering(slug))}
