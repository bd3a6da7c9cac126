"""Provider normalizers and their supporting leaves."""

from pricing_atlas.normalization.aws import AWSNormalizer
from pricing_atlas.normalization.azure import AzureNormalizer
from pricing_atlas.normalization.base import BaseNormalizer, NormalizationError, PricingNormalizer
from pricing_atlas.normalization.mappings import RegionRepository, ServiceMappingRepository
from pricing_atlas.normalization.schema import (
    NormalizationContext,
    NormalizationResult,
    NormalizedPricing,
    NormalizedRegion,
    PricingDetails,
    RawPricingRecord,
    ResourceSpecs,
    ServiceMapping,
)
from pricing_atlas.normalization.specs import extract_resource_specs
from pricing_atlas.normalization.units import convert_value, normalize_unit, unit_category
from pricing_atlas.normalization.validation import ValidationFailure, validate_input, validate_output

__all__ = [
    "AWSNormalizer",
    "AzureNormalizer",
    "BaseNormalizer",
    "NormalizationContext",
    "NormalizationError",
    "NormalizationResult",
    "NormalizedPricing",
    "NormalizedRegion",
    "PricingDetails",
    "PricingNormalizer",
    "RawPricingRecord",
    "RegionRepository",
    "ResourceSpecs",
    "ServiceMapping",
    "ServiceMappingRepository",
    "ValidationFailure",
    "convert_value",
    "extract_resource_specs",
    "normalize_unit",
    "unit_category",
    "validate_input",
    "validate_output",
]
