"""Marketplace data models returned by the service client."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class ServiceOfferingInfo:
    """A published service offering."""

    offering_id: str
    slug: str
    name: str
    category: str
    price_usdc: int
    max_latency_ms: int
    seller_agent_id: str
    completed_jobs: int = 0
    avg_rating: float | None = None


@dataclass
class ServiceJobInfo:
    """A marketplace job as seen over the API."""

    job_id: str
    offering_id: str
    buyer_agent_id: str
    seller_agent_id: str
    status: str
    price_usdc: int
    expires_at: datetime
    requirements: dict[str, Any] = field(default_factory=dict)
    deliverables: dict[str, Any] | None = None
    buyer_rating: int | None = None
    failed_reason: str | None = None
    completed_at: datetime | None = None
