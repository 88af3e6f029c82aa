"""SQLAlchemy ORM models and persisted status enums."""

import enum
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

DEFAULT_STARTING_SCORE = 500


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware UTC datetimes on every backend, including SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class AgentStatus(str, enum.Enum):
    PENDING = "PENDING"
    DEPLOYING = "DEPLOYING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"
    PAUSED = "PAUSED"
    TERMINATED = "TERMINATED"


class TrinityStatus(str, enum.Enum):
    """Identity provisioning progress, in step order."""

    NONE = "NONE"
    CDP_ONLY = "CDP_ONLY"
    CDP_FARCASTER = "CDP_FARCASTER"
    COMPLETE = "COMPLETE"

    @property
    def rank(self) -> int:
        return _TRINITY_ORDER.index(self)

    def reached(self, other: "TrinityStatus") -> bool:
        """True when this status is ``other`` or a later step."""
        return self.rank >= other.rank


_TRINITY_ORDER = list(TrinityStatus)


class ServiceJobStatus(str, enum.Enum):
    CREATED = "CREATED"
    ACCEPTED = "ACCEPTED"
    DELIVERING = "DELIVERING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    DISPUTED = "DISPUTED"
    EXPIRED = "EXPIRED"


class OfferingStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class FeeStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def _enum(cls: type[enum.Enum]) -> Enum:
    return Enum(cls, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e])


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
        list[str]: JSON,
        datetime: UTCDateTime,
    }


# ===========================================
# AGENT IDENTITY
# ===========================================


class Agent(Base):
    """Identity root; mutated by the deployer and the social worker only."""

    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    creator_address: Mapped[str] = mapped_column(String(42), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    persona: Mapped[dict[str, Any]] = mapped_column(default=dict)
    skill_ids: Mapped[list[str]] = mapped_column(default=list)
    status: Mapped[AgentStatus] = mapped_column(_enum(AgentStatus), default=AgentStatus.PENDING)
    trinity_status: Mapped[TrinityStatus] = mapped_column(
        _enum(TrinityStatus), default=TrinityStatus.NONE
    )

    # Wallet leg
    wallet_id: Mapped[str | None] = mapped_column(String(100))
    wallet_address: Mapped[str | None] = mapped_column(String(42))
    wallet_email: Mapped[str | None] = mapped_column(String(255))
    on_chain_address: Mapped[str | None] = mapped_column(String(42))

    # Social leg
    fid: Mapped[int | None] = mapped_column(Integer)
    signer_uuid: Mapped[str | None] = mapped_column(String(64))
    farcaster_username: Mapped[str | None] = mapped_column(String(32))
    custody_address: Mapped[str | None] = mapped_column(String(42))
    pfp_url: Mapped[str | None] = mapped_column(Text)
    banner_url: Mapped[str | None] = mapped_column(Text)

    # On-chain identity leg
    erc8004_token_id: Mapped[int | None] = mapped_column(BigInteger)
    agent_uri: Mapped[str | None] = mapped_column(Text)
    trinity_mint_tx: Mapped[str | None] = mapped_column(String(66))
    trinity_linked_at: Mapped[datetime | None] = mapped_column()

    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    identity: Mapped["ERC8004Identity | None"] = relationship(back_populates="agent", uselist=False)

    __table_args__ = (
        Index("idx_agents_status", "status"),
        Index("idx_agents_creator", "creator_address"),
    )

    @property
    def has_social_identity(self) -> bool:
        return self.fid is not None and self.signer_uuid is not None

    def identity_fields_consistent(self) -> bool:
        """Check that ``trinity_status`` agrees with the identity fields present."""
        has_wallet = self.wallet_id is not None and self.wallet_address is not None
        has_token = self.erc8004_token_id is not None and self.agent_uri is not None
        status = self.trinity_status
        if status.reached(TrinityStatus.CDP_ONLY) and not has_wallet:
            return False
        if status.reached(TrinityStatus.CDP_FARCASTER) and not self.has_social_identity:
            return False
        if status.reached(TrinityStatus.COMPLETE) and not has_token:
            return False
        if not status.reached(TrinityStatus.COMPLETE) and has_token:
            return False
        return True


class ERC8004Identity(Base):
    """On-chain identity record; score mutated only by the anchor pipeline."""

    __tablename__ = "erc8004_identities"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    agent_id: Mapped[str] = mapped_column(ForeignKey("agents.id"), unique=True, nullable=False)
    token_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    agent_uri: Mapped[str] = mapped_column(Text, nullable=False)
    reputation_score: Mapped[int] = mapped_column(Integer, default=DEFAULT_STARTING_SCORE)
    registration_json: Mapped[dict[str, Any]] = mapped_column(default=dict)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    agent: Mapped["Agent"] = relationship(back_populates="identity")


# ===========================================
# SERVICE MARKETPLACE
# ===========================================


class ServiceOffering(Base):
    """A capability an agent sells; stats updated as jobs complete and are rated."""

    __tablename__ = "service_offerings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    seller_agent_id: Mapped[str] = mapped_column(ForeignKey("agents.id"), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    price_usdc: Mapped[int] = mapped_column(BigInteger, nullable=False)
    max_latency_ms: Mapped[int] = mapped_column(Integer, default=30_000)
    status: Mapped[OfferingStatus] = mapped_column(_enum(OfferingStatus), default=OfferingStatus.ACTIVE)
    total_jobs: Mapped[int] = mapped_column(Integer, default=0)
    completed_jobs: Mapped[int] = mapped_column(Integer, default=0)
    avg_latency_ms: Mapped[float] = mapped_column(Float, default=0.0)
    avg_rating: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    seller: Mapped["Agent"] = relationship()


class ServiceJob(Base):
    """One purchase of an offering by a buyer agent."""

    __tablename__ = "service_jobs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    offering_id: Mapped[str] = mapped_column(ForeignKey("service_offerings.id"), nullable=False)
    buyer_agent_id: Mapped[str] = mapped_column(ForeignKey("agents.id"), nullable=False)
    seller_agent_id: Mapped[str] = mapped_column(ForeignKey("agents.id"), nullable=False)
    status: Mapped[ServiceJobStatus] = mapped_column(
        _enum(ServiceJobStatus), default=ServiceJobStatus.CREATED
    )
    price_usdc: Mapped[int] = mapped_column(BigInteger, nullable=False)
    requirements: Mapped[dict[str, Any]] = mapped_column(default=dict)
    deliverables: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    failed_reason: Mapped[str | None] = mapped_column(Text)
    buyer_rating: Mapped[int | None] = mapped_column(Integer)
    buyer_feedback: Mapped[str | None] = mapped_column(Text)
    payment_tx_hash: Mapped[str | None] = mapped_column(String(66))
    buyback_allocation_usdc: Mapped[int | None] = mapped_column(BigInteger)
    buyback_tx_hash: Mapped[str | None] = mapped_column(String(66))
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column()
    delivered_at: Mapped[datetime | None] = mapped_column()
    completed_at: Mapped[datetime | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    offering: Mapped["ServiceOffering"] = relationship()
    buyer: Mapped["Agent"] = relationship(foreign_keys=[buyer_agent_id])
    seller: Mapped["Agent"] = relationship(foreign_keys=[seller_agent_id])

    __table_args__ = (
        Index("idx_jobs_seller_status", "seller_agent_id", "status"),
        Index("idx_jobs_buyer", "buyer_agent_id"),
        Index("idx_jobs_offering", "offering_id"),
    )


# ===========================================
# REPUTATION AND FEES
# ===========================================


class AgentDecisionLog(Base):
    """Private record of one skill execution; only its hash leaves this table."""

    __tablename__ = "agent_decision_logs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    agent_id: Mapped[str] = mapped_column(ForeignKey("agents.id"), nullable=False)
    job_id: Mapped[str | None] = mapped_column(ForeignKey("service_jobs.id"))
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    response: Mapped[str] = mapped_column(Text, nullable=False)
    model_used: Mapped[str] = mapped_column(String(100), nullable=False)
    tokens_used: Mapped[int] = mapped_column(Integer, default=0)
    execution_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    is_success: Mapped[bool] = mapped_column(Boolean, default=True)
    error_message: Mapped[str | None] = mapped_column(Text)
    decision_log_hash: Mapped[str | None] = mapped_column(String(64))
    anchored_tx_hash: Mapped[str | None] = mapped_column(String(66))
    anchored_at: Mapped[datetime | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    __table_args__ = (Index("idx_decision_logs_job_agent", "job_id", "agent_id"),)


class FeeDistribution(Base):
    """Append-only audit row written by the fee sweep."""

    __tablename__ = "fee_distributions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    total_amount: Mapped[str] = mapped_column(String(80), nullable=False)  # wei, decimal string
    currency: Mapped[str] = mapped_column(String(10), default="ETH")
    agent_treasury_addr: Mapped[str] = mapped_column(String(42), nullable=False)
    status: Mapped[FeeStatus] = mapped_column(_enum(FeeStatus), default=FeeStatus.CONFIRMED)
    claims_made: Mapped[int] = mapped_column(Integer, default=0)
    distributions_made: Mapped[int] = mapped_column(Integer, default=0)
    tx_hash: Mapped[str | None] = mapped_column(String(66))
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
