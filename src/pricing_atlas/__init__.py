"""PricingAtlas: normalization ETL for AWS and Azure retail cloud pricing.

Raw vendor pricing is reconciled into one canonical, provider-agnostic
pricing model by a concurrent batch pipeline.
"""

from __future__ import annotations

__version__ = "0.1.0"

# Public API exports
from pricing_atlas.contracts import (
    JobConfiguration,
    JobStatus,
    JobType,
    PricingFilter,
    PricingModel,
    Provider,
)
from pricing_atlas.etl import (
    Job,
    JobNotFoundError,
    JobProgress,
    JobStateError,
    Pipeline,
    PipelineError,
    build_pipeline,
)
from pricing_atlas.normalization import (
    AWSNormalizer,
    AzureNormalizer,
    NormalizationError,
    NormalizationResult,
    NormalizedPricing,
    RawPricingRecord,
    ResourceSpecs,
    convert_value,
    extract_resource_specs,
    normalize_unit,
    unit_category,
)

__all__ = [
    "AWSNormalizer",
    "AzureNormalizer",
    "Job",
    "JobConfiguration",
    "JobNotFoundError",
    "JobProgress",
    "JobStateError",
    "JobStatus",
    "JobType",
    "NormalizationError",
    "NormalizationResult",
    "NormalizedPricing",
    "Pipeline",
    "PipelineError",
    "PricingFilter",
    "PricingModel",
    "Provider",
    "RawPricingRecord",
    "ResourceSpecs",
    "__version__",
    "build_pipeline",
    "convert_value",
    "extract_resource_specs",
    "normalize_unit",
    "unit_category",
]
