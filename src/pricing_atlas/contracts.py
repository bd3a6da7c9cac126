"""Data contracts and validation for the PricingAtlas ETL.

This module defines the shared enums and the Pydantic models that cross the
control-surface boundary: job configuration coming in from callers and the
filter used to query normalized pricing.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pricing_atlas.config import DEFAULT_BATCH_SIZE, DEFAULT_CONCURRENT_WORKERS


# =============================================================================
# Enums (Single Source of Truth)
# =============================================================================


class Provider(str, Enum):
    """Cloud providers whose raw retail pricing can be normalized."""

    AWS = "aws"
    AZURE = "azure"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(member.value for member in cls)


class PricingModel(str, Enum):
    """Pricing model classification of one canonical price line."""

    ON_DEMAND = "on_demand"
    RESERVED_1YR = "reserved_1yr"
    RESERVED_3YR = "reserved_3yr"
    SPOT = "spot"
    SAVINGS_PLAN = "savings_plan"

    @property
    def is_reserved(self) -> bool:
        return self in (PricingModel.RESERVED_1YR, PricingModel.RESERVED_3YR)


class JobStatus(str, Enum):
    """ETL job state machine.

    pending -> running -> completed | failed | cancelled. Terminal states
    have no outgoing transitions.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class JobType(str, Enum):
    """Kinds of ETL jobs the pipeline can run."""

    NORMALIZE_ALL = "normalize_all"
    NORMALIZE_PROVIDER = "normalize_provider"
    NORMALIZE_REGION = "normalize_region"
    NORMALIZE_SERVICE = "normalize_service"
    CLEANUP_NORMALIZED = "cleanup_normalized"


# =============================================================================
# Input Contracts
# =============================================================================


class JobConfiguration(BaseModel):
    """Validated configuration for one ETL job.

    Unset `batch_size` / `concurrent_workers` are filled in by
    `with_defaults()` when the job is started.

    Example:
        >>> config = JobConfiguration(providers=["AWS"], dry_run=True)
        >>> config.providers
        ['aws']
    """

    model_config = ConfigDict(extra="ignore")

    providers: list[str] = Field(
        default_factory=list,
        description="Providers to normalize (empty = every supported provider)",
    )
    regions: list[str] = Field(
        default_factory=list,
        description="Vendor region codes to restrict raw records to",
    )
    services: list[str] = Field(
        default_factory=list,
        description="Vendor service codes/names to restrict raw records to",
    )
    batch_size: Optional[int] = Field(
        default=None,
        gt=0,
        description="Raw records fetched per batch",
    )
    concurrent_workers: Optional[int] = Field(
        default=None,
        gt=0,
        le=64,
        description="Worker threads normalizing batches in parallel",
    )
    clear_existing: bool = Field(
        default=False,
        description="Delete all normalized pricing before running",
    )
    dry_run: bool = Field(
        default=False,
        description="Normalize and count but never persist",
    )

    @field_validator("providers")
    @classmethod
    def validate_providers(cls, v: list[str]) -> list[str]:
        """Lower-case provider names and reject unsupported ones."""
        cleaned: list[str] = []
        for raw in v:
            token = str(raw).strip().lower()
            if not token:
                continue
            if token not in Provider.values():
                raise ValueError(f"Unsupported provider: {raw!r}")
            if token not in cleaned:
                cleaned.append(token)
        return cleaned

    @field_validator("regions", "services")
    @classmethod
    def strip_filters(cls, v: list[str]) -> list[str]:
        return [str(item).strip() for item in v if str(item).strip()]

    def with_defaults(self) -> "JobConfiguration":
        """Return a copy with batch size and worker count resolved."""
        return self.model_copy(
            update={
                "batch_size": self.batch_size or DEFAULT_BATCH_SIZE,
                "concurrent_workers": self.concurrent_workers or DEFAULT_CONCURRENT_WORKERS,
            }
        )


OrderByColumn = Literal[
    "price_per_unit",
    "resource_name",
    "provider",
    "normalized_region",
    "service_type",
    "id",
]


class PricingFilter(BaseModel):
    """Filter for querying normalized pricing records."""

    model_config = ConfigDict(extra="ignore")

    provider: Optional[str] = None
    service_category: Optional[str] = None
    service_family: Optional[str] = None
    service_type: Optional[str] = None
    normalized_region: Optional[str] = None
    pricing_model: Optional[PricingModel] = None
    currency: Optional[str] = None
    min_price_per_unit: Optional[float] = Field(default=None, ge=0)
    max_price_per_unit: Optional[float] = Field(default=None, ge=0)
    vcpu: Optional[int] = Field(default=None, gt=0)
    limit: Optional[int] = Field(default=None, gt=0, le=10_000)
    offset: Optional[int] = Field(default=None, ge=0)
    order_by: OrderByColumn = "price_per_unit"
    order_direction: Literal["asc", "desc"] = "asc"

    @field_validator("order_direction", mode="before")
    @classmethod
    def lower_direction(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v
