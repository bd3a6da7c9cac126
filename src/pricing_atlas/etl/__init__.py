"""Batch normalization pipeline and job controller."""

from pricing_atlas.etl.jobs import BatchResult, Job, JobProgress, RawBatch
from pricing_atlas.etl.pipeline import (
    JobNotFoundError,
    JobStateError,
    Pipeline,
    PipelineError,
    build_pipeline,
)

__all__ = [
    "BatchResult",
    "Job",
    "JobNotFoundError",
    "JobProgress",
    "JobStateError",
    "Pipeline",
    "PipelineError",
    "RawBatch",
    "build_pipeline",
]
