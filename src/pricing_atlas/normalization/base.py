"""Shared normalization steps for provider normalizers.

Every provider follows the same outline: validate the raw record, decode and
shape-check its payload, resolve the service and region mappings, then turn
each pricing line into a validated canonical record. Per-record problems are
reported in the returned `NormalizationResult`; `normalize()` never raises.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pricing_atlas.config import DEFAULT_MINIMUM_COMMITMENT
from pricing_atlas.normalization.mappings import RegionRepository, ServiceMappingRepository
from pricing_atlas.normalization.payloads import PayloadShapeError
from pricing_atlas.normalization.schema import (
    NormalizationContext,
    NormalizationResult,
    NormalizedPricing,
    PricingDetails,
    RawPayload,
    RawPricingRecord,
    ResourceSpecs,
)
from pricing_atlas.normalization.specs import ResourceSpecExtractor
from pricing_atlas.normalization.units import StandardUnitNormalizer, UnitNormalizer
from pricing_atlas.normalization.validation import InputValidator

logger = logging.getLogger(__name__)

UNMAPPED_REASON = "service or region not mapped"


class NormalizationError(Exception):
    """A raw record that a normalizer cannot handle at all."""

    def __init__(self, provider: str, service_code: str, region: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider
        self.service_code = service_code
        self.region = region
        self.message = message


@dataclass(frozen=True)
class PriceLine:
    price: float
    unit: str
    currency: str
    description: str = ""


def parse_effective_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; anything unparseable yields None."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


class PricingNormalizer(ABC):
    """Turns one raw record into zero or more canonical pricing records."""

    provider: str = ""

    @abstractmethod
    def normalize(self, record: RawPricingRecord) -> NormalizationResult:
        raise NotImplementedError


class BaseNormalizer(PricingNormalizer):
    def __init__(
        self,
        services: ServiceMappingRepository,
        regions: RegionRepository,
        spec_extractor: ResourceSpecExtractor,
        units: Optional[UnitNormalizer] = None,
        validator: Optional[InputValidator] = None,
    ) -> None:
        self.services = services
        self.regions = regions
        self.spec_extractor = spec_extractor
        self.units = units or StandardUnitNormalizer()
        self.validator = validator or InputValidator()

    @abstractmethod
    def parse_payload(self, payload: RawPayload) -> dict[str, Any]:
        """Decode the payload into the provider's document shape."""

    @abstractmethod
    def process(self, document: dict[str, Any], context: NormalizationContext) -> NormalizationResult:
        """Build canonical records from a decoded, mapped document."""

    def normalize(self, record: RawPricingRecord) -> NormalizationResult:
        failure = self.validator.validate_input(record)
        if failure is not None:
            logger.warning(
                "Input validation failed provider=%s service=%s: %s",
                record.provider,
                record.service_code,
                failure,
            )
            return NormalizationResult.error(failure.render("validation failed"))
        try:
            self.check_provider(record)
        except NormalizationError as exc:
            logger.warning("Rejected raw record %s: %s", record.id, exc)
            return NormalizationResult.error(f"validation failed: {exc}")

        try:
            document = self.parse_payload(record.payload)
        except PayloadShapeError as exc:
            logger.warning("Invalid %s payload for raw record %s: %s", self.provider, record.id, exc)
            return NormalizationResult.error(f"invalid {self.provider} payload structure: {exc}")

        try:
            context = self.resolve_context(record)
        except Exception as exc:  # noqa: BLE001
            logger.error("Mapping lookup failed for raw record %s: %s", record.id, exc)
            return NormalizationResult.error(f"failed to get normalization context: {exc}")
        if context is None:
            logger.warning(
                "Skipping unmapped record provider=%s service=%s region=%s",
                record.provider,
                record.service_code,
                record.region,
            )
            return NormalizationResult.skipped(UNMAPPED_REASON)

        result = self.process(document, context)
        logger.debug(
            "Normalized raw record %s: records=%d skipped=%d errors=%d",
            record.id,
            len(result.records),
            result.skipped_count,
            result.error_count,
        )
        return result

    def check_provider(self, record: RawPricingRecord) -> None:
        """Raise NormalizationError when the record belongs to another provider."""
        if record.provider != self.provider:
            raise NormalizationError(
                record.provider,
                record.service_code,
                record.region,
                f"unsupported provider for {self.provider} normalizer",
            )

    def resolve_context(self, record: RawPricingRecord) -> Optional[NormalizationContext]:
        """Return None when either the service or the region is unmapped."""
        mapping = self.services.get_service_mapping(record.provider, record.service_code)
        if mapping is None:
            return None
        region = self.regions.get_region(record.provider, record.region)
        if region is None:
            return None
        return NormalizationContext(
            provider=record.provider,
            service_mapping=mapping,
            normalized_region=region,
            source_raw_id=record.id,
            collection_id=record.collection_id,
        )

    def extract_specs(self, context: NormalizationContext, attributes: dict[str, Any]) -> ResourceSpecs:
        return self.spec_extractor.extract(
            context.provider,
            context.service_mapping.canonical_service_type,
            attributes,
        )

    def build_record(
        self,
        context: NormalizationContext,
        line: PriceLine,
        *,
        resource_name: str,
        resource_specs: ResourceSpecs,
        pricing_model: str,
        pricing_details: Optional[PricingDetails] = None,
        provider_sku: Optional[str] = None,
        effective_date: Optional[datetime] = None,
    ) -> tuple[Optional[NormalizedPricing], Optional[str]]:
        """Build and validate one canonical record.

        Returns `(record, None)` on success or `(None, message)` when the
        record fails output validation.
        """
        unit = self.units.normalize(context.provider, line.unit)
        price = self.units.convert_value(line.unit, unit, line.price)
        mapping = context.service_mapping
        record = NormalizedPricing(
            provider=context.provider,
            provider_service_code=context.provider_service_code,
            service_category=mapping.service_category,
            service_family=mapping.service_family,
            service_type=mapping.canonical_service_type,
            normalized_region=context.normalized_region.canonical_code,
            provider_region=context.provider_region,
            resource_name=resource_name,
            resource_description=line.description or None,
            resource_specs=resource_specs,
            price_per_unit=price,
            unit=unit,
            currency=(line.currency or "").strip(),
            pricing_model=pricing_model,
            pricing_details=pricing_details or PricingDetails(),
            provider_sku=provider_sku,
            effective_date=effective_date,
            minimum_commitment=DEFAULT_MINIMUM_COMMITMENT,
            source_raw_id=context.source_raw_id,
        )
        failure = self.validator.validate_output(record)
        if failure is not None:
            logger.warning(
                "Record validation failed raw_id=%s resource=%s field=%s value=%r: %s",
                context.source_raw_id,
                resource_name,
                failure.field,
                failure.value,
                failure.message,
            )
            return None, failure.render("record validation failed")
        logger.debug(
            "Created normalized record resource=%s price=%s unit=%s model=%s",
            resource_name,
            price,
            unit,
            pricing_model,
        )
        return record, None
