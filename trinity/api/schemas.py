"""Request bodies and response serializers for the HTTP API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from trinity.marketplace.service import DEFAULT_TTL_MINUTES, MAX_RATING, MAX_TTL_MINUTES, MIN_RATING
from trinity.models import ServiceJob, ServiceJobStatus, ServiceOffering


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateJobRequest(_CamelModel):
    offering_id: str
    buyer_agent_id: str
    requirements: dict[str, Any] = Field(default_factory=dict)
    ttl_minutes: int = Field(default=DEFAULT_TTL_MINUTES, ge=1, le=MAX_TTL_MINUTES)


class TransitionJobRequest(_CamelModel):
    status: ServiceJobStatus
    deliverables: dict[str, Any] | None = None
    failed_reason: str | None = Field(default=None, max_length=2000)


class RateJobRequest(_CamelModel):
    rating: int = Field(ge=MIN_RATING, le=MAX_RATING)
    feedback: str | None = Field(default=None, max_length=1000)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def job_to_dict(job: ServiceJob) -> dict[str, Any]:
    return {
        "id": job.id,
        "offeringId": job.offering_id,
        "buyerAgentId": job.buyer_agent_id,
        "sellerAgentId": job.seller_agent_id,
        "status": job.status.value,
        "priceUsdc": str(job.price_usdc),
        "requirements": job.requirements,
        "deliverables": job.deliverables,
        "failedReason": job.failed_reason,
        "buyerRating": job.buyer_rating,
        "buyerFeedback": job.buyer_feedback,
        "paymentTxHash": job.payment_tx_hash,
        "buybackAllocationUsdc": (
            str(job.buyback_allocation_usdc) if job.buyback_allocation_usdc is not None else None
        ),
        "expiresAt": _iso(job.expires_at),
        "acceptedAt": _iso(job.accepted_at),
        "deliveredAt": _iso(job.delivered_at),
        "completedAt": _iso(job.completed_at),
        "createdAt": _iso(job.created_at),
    }


def offering_to_dict(offering: ServiceOffering) -> dict[str, Any]:
    return {
        "id": offering.id,
        "slug": offering.slug,
        "name": offering.name,
        "category": offering.category,
        "description": offering.description,
        "priceUsdc": str(offering.price_usdc),
        "maxLatencyMs": offering.max_latency_ms,
        "sellerAgentId": offering.seller_agent_id,
        "status": offering.status.value,
        "totalJobs": offering.total_jobs,
        "completedJobs": offering.completed_jobs,
        "avgLatencyMs": offering.avg_latency_ms,
        "avgRating": offering.avg_rating,
    }
