"""Canonical schema helpers for raw and normalized pricing records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Optional, Union

from pricing_atlas.config import DEFAULT_MINIMUM_COMMITMENT

RawPayload = Union[str, bytes, dict, list]


@dataclass(frozen=True)
class RawPricingRecord:
    """One raw vendor pricing item as written by a collector."""

    id: int
    provider: str
    service_code: str
    region: str
    payload: RawPayload
    collection_id: str = ""
    service_family: Optional[str] = None


@dataclass(frozen=True)
class ServiceMapping:
    provider: str
    vendor_service_name: str
    canonical_service_type: str
    service_category: str
    service_family: str
    vendor_service_code: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class NormalizedRegion:
    canonical_code: str
    display_name: str
    aws_region: Optional[str] = None
    azure_region: Optional[str] = None
    country: Optional[str] = None
    continent: Optional[str] = None
    id: Optional[int] = None

    def provider_region(self, provider: str) -> str:
        """Return the vendor-specific region code for `provider`."""
        if provider == "aws":
            return self.aws_region or ""
        if provider == "azure":
            return self.azure_region or ""
        return ""


def _drop_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass
class ResourceSpecs:
    """Best-effort hardware shape of a priced resource; every field is optional."""

    vcpu: Optional[int] = None
    memory_gb: Optional[float] = None
    storage_gb: Optional[float] = None
    storage_type: Optional[str] = None
    gpu_count: Optional[int] = None
    gpu_memory_gb: Optional[float] = None
    network_performance: Optional[str] = None
    processor_type: Optional[str] = None
    architecture: Optional[str] = None
    clock_speed_ghz: Optional[float] = None
    burstable: Optional[bool] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(asdict(self))

    @classmethod
    def from_dict(cls, payload: Optional[dict[str, Any]]) -> "ResourceSpecs":
        if not payload:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})


@dataclass
class PricingDetails:
    """Commitment details; populated only for non-on-demand pricing models."""

    term_length: Optional[str] = None
    payment_option: Optional[str] = None
    upfront_cost: Optional[float] = None
    hourly_rate: Optional[float] = None
    savings_percent: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(asdict(self))

    @classmethod
    def from_dict(cls, payload: Optional[dict[str, Any]]) -> "PricingDetails":
        if not payload:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})


@dataclass
class NormalizedPricing:
    """One canonical, provider-agnostic price line."""

    provider: str
    provider_service_code: str
    service_category: str
    service_family: str
    service_type: str
    normalized_region: str
    provider_region: str
    resource_name: str
    price_per_unit: float
    unit: str
    currency: str
    pricing_model: str
    source_raw_id: int
    resource_specs: ResourceSpecs = field(default_factory=ResourceSpecs)
    pricing_details: PricingDetails = field(default_factory=PricingDetails)
    provider_sku: Optional[str] = None
    resource_description: Optional[str] = None
    effective_date: Optional[datetime] = None
    minimum_commitment: int = DEFAULT_MINIMUM_COMMITMENT
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["resource_specs"] = self.resource_specs.to_dict()
        payload["pricing_details"] = self.pricing_details.to_dict()
        if self.effective_date is not None:
            payload["effective_date"] = self.effective_date.isoformat()
        return payload


@dataclass(frozen=True)
class NormalizationContext:
    """Per-record mapping resolution; built once and never persisted."""

    provider: str
    service_mapping: ServiceMapping
    normalized_region: NormalizedRegion
    source_raw_id: int
    collection_id: str = ""

    @property
    def provider_service_code(self) -> str:
        return self.service_mapping.vendor_service_code or self.service_mapping.vendor_service_name

    @property
    def provider_region(self) -> str:
        return self.normalized_region.provider_region(self.provider)


@dataclass
class NormalizationResult:
    success: bool = False
    records: list[NormalizedPricing] = field(default_factory=list)
    skipped_count: int = 0
    error_count: int = 0
    errors: list[str] = field(default_factory=list)

    @classmethod
    def error(cls, message: str) -> "NormalizationResult":
        return cls(success=False, error_count=1, errors=[message])

    @classmethod
    def skipped(cls, reason: str, count: int = 1) -> "NormalizationResult":
        return cls(success=False, skipped_count=count, errors=[reason])
