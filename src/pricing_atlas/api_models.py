"""Pydantic API contracts for the ETL control and pricing query endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from pricing_atlas.contracts import JobConfiguration, JobStatus, JobType


class StartJobRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: JobType = JobType.NORMALIZE_ALL
    configuration: JobConfiguration = Field(default_factory=JobConfiguration)


class JobProgressResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_records: int
    processed_records: int
    normalized_records: int
    skipped_records: int
    error_records: int
    current_stage: str
    last_updated: datetime
    rate: float


class JobResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: JobType
    provider: Optional[str] = None
    status: JobStatus
    progress: JobProgressResponse
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    configuration: JobConfiguration


class JobListResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jobs: list[JobResponse]
    total: int


class PricingRecordResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    provider: str
    provider_service_code: str
    provider_sku: Optional[str] = None
    service_category: str
    service_family: str
    service_type: str
    normalized_region: str
    provider_region: str
    resource_name: str
    resource_description: Optional[str] = None
    resource_specs: dict[str, Any] = Field(default_factory=dict)
    price_per_unit: float
    unit: str
    currency: str
    pricing_model: str
    pricing_details: dict[str, Any] = Field(default_factory=dict)
    effective_date: Optional[datetime] = None
    minimum_commitment: int
    source_raw_id: int


class PricingQueryResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    rows: list[PricingRecordResponse]
    total: int
    returned: int
