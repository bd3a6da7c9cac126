"""Optional FastAPI server for the normalization ETL."""

from __future__ import annotations

import os
from typing import Optional

from pricing_atlas import __version__
from pricing_atlas.api_models import (
    JobListResponse,
    JobResponse,
    PricingQueryResponse,
    StartJobRequest,
)
from pricing_atlas.api_service import (
    ServiceContext,
    build_service_context,
    run_cancel_job,
    run_get_job,
    run_list_jobs,
    run_query_pricing,
    run_start_job,
)
from pricing_atlas.config import CORS_ORIGINS_ENV
from pricing_atlas.contracts import PricingFilter
from pricing_atlas.etl.pipeline import JobNotFoundError, JobStateError


def create_app(context: Optional[ServiceContext] = None):
    """Create FastAPI app lazily so base package has no hard FastAPI dependency."""
    try:
        from fastapi import FastAPI, HTTPException
        from fastapi.middleware.cors import CORSMiddleware
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError(
            "FastAPI is not installed. Install with: "
            "pip install 'fastapi>=0.110,<1.0' 'uvicorn>=0.30,<1.0'"
        ) from exc

    service = context or build_service_context()
    app = FastAPI(title="PricingAtlas API", version=__version__)

    origins_raw = os.getenv(CORS_ORIGINS_ENV, "*")
    allow_origins = [origin.strip() for origin in origins_raw.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/v1/etl/jobs", response_model=JobResponse, status_code=202)
    def start_job(payload: StartJobRequest) -> JobResponse:
        try:
            return run_start_job(service, payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.get("/api/v1/etl/jobs", response_model=JobListResponse)
    def list_jobs() -> JobListResponse:
        try:
            return run_list_jobs(service)
        except Exception as exc:  # noqa: BLE001
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.get("/api/v1/etl/jobs/{job_id}", response_model=JobResponse)
    def get_job(job_id: str) -> JobResponse:
        try:
            return run_get_job(service, job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.post("/api/v1/etl/jobs/{job_id}/cancel", response_model=JobResponse)
    def cancel_job(job_id: str) -> JobResponse:
        try:
            return run_cancel_job(service, job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except JobStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.get("/api/v1/pricing", response_model=PricingQueryResponse)
    def query_pricing(
        provider: str | None = None,
        service_category: str | None = None,
        service_family: str | None = None,
        service_type: str | None = None,
        normalized_region: str | None = None,
        pricing_model: str | None = None,
        currency: str | None = None,
        min_price_per_unit: float | None = None,
        max_price_per_unit: float | None = None,
        vcpu: int | None = None,
        limit: int | None = 100,
        offset: int | None = None,
        order_by: str = "price_per_unit",
        order_direction: str = "asc",
    ) -> PricingQueryResponse:
        try:
            pricing_filter = PricingFilter(
                provider=provider,
                service_category=service_category,
                service_family=service_family,
                service_type=service_type,
                normalized_region=normalized_region,
                pricing_model=pricing_model,
                currency=currency,
                min_price_per_unit=min_price_per_unit,
                max_price_per_unit=max_price_per_unit,
                vcpu=vcpu,
                limit=limit,
                offset=offset,
                order_by=order_by,
                order_direction=order_direction,
            )
            return run_query_pricing(service, pricing_filter)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    return app
