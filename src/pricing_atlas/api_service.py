"""Service-layer handlers for API endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from pricing_atlas.api_models import (
    JobListResponse,
    JobResponse,
    PricingQueryResponse,
    PricingRecordResponse,
    StartJobRequest,
)
from pricing_atlas.contracts import PricingFilter
from pricing_atlas.etl.jobs import Job
from pricing_atlas.etl.pipeline import JobNotFoundError, Pipeline, build_pipeline
from pricing_atlas.normalization.schema import NormalizedPricing


class PricingQueryRepository(Protocol):
    def query(self, pricing_filter: Optional[PricingFilter] = None) -> list[NormalizedPricing]: ...

    def count(self, pricing_filter: Optional[PricingFilter] = None) -> int: ...


@dataclass
class ServiceContext:
    pipeline: Pipeline
    pricing: PricingQueryRepository


def build_service_context(database_url: Optional[str] = None) -> ServiceContext:
    """Wire a pipeline and pricing repository against the configured database."""
    from pricing_atlas.storage.engine import (
        create_all_tables,
        create_database_engine,
        create_session_factory,
    )
    from pricing_atlas.storage.repositories import SqlNormalizedPricingRepository

    engine = create_database_engine(database_url)
    create_all_tables(engine)
    session_factory = create_session_factory(engine)
    return ServiceContext(
        pipeline=build_pipeline(session_factory),
        pricing=SqlNormalizedPricingRepository(session_factory),
    )


def _job_response(job: Job) -> JobResponse:
    return JobResponse.model_validate(job.to_dict())


def run_start_job(context: ServiceContext, payload: StartJobRequest) -> JobResponse:
    job = context.pipeline.start_job(payload.type, payload.configuration)
    return _job_response(job)


def run_get_job(context: ServiceContext, job_id: str) -> JobResponse:
    job = context.pipeline.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return _job_response(job)


def run_list_jobs(context: ServiceContext) -> JobListResponse:
    jobs = [_job_response(job) for job in context.pipeline.get_all_jobs()]
    return JobListResponse(jobs=jobs, total=len(jobs))


def run_cancel_job(context: ServiceContext, job_id: str) -> JobResponse:
    return _job_response(context.pipeline.cancel_job(job_id))


def run_query_pricing(context: ServiceContext, pricing_filter: PricingFilter) -> PricingQueryResponse:
    records = context.pricing.query(pricing_filter)
    total = context.pricing.count(pricing_filter)
    rows = [PricingRecordResponse.model_validate(record.to_dict()) for record in records]
    return PricingQueryResponse(rows=rows, total=total, returned=len(rows))
