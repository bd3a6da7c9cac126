"""AWS price list normalizer.

One AWS product carries OnDemand and Reserved terms, each with one or more
price dimensions. Every (term, dimension) pair is a separate pricing line, so
a single raw record commonly yields several canonical records.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pricing_atlas.contracts import PricingModel, Provider
from pricing_atlas.normalization.base import BaseNormalizer, PriceLine, parse_effective_date
from pricing_atlas.normalization.mappings import RegionRepository, ServiceMappingRepository
from pricing_atlas.normalization.payloads import parse_aws_product
from pricing_atlas.normalization.schema import (
    NormalizationContext,
    NormalizationResult,
    PricingDetails,
    RawPayload,
)
from pricing_atlas.normalization.specs import AWSResourceSpecExtractor
from pricing_atlas.normalization.units import UnitNormalizer
from pricing_atlas.normalization.validation import InputValidator

logger = logging.getLogger(__name__)

UPFRONT_FEE_UNIT = "quantity"


def extract_price_line(dimension: dict[str, Any]) -> PriceLine:
    """Read the first currency of a price dimension.

    Raises ValueError when the dimension has no price or it is not numeric.
    """
    prices = dimension.get("pricePerUnit") or {}
    if not prices:
        raise ValueError("no price information in dimension")
    currency, raw_price = next(iter(prices.items()))
    try:
        price = float(raw_price)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"failed to parse price {raw_price!r}") from exc
    return PriceLine(
        price=price,
        unit=str(dimension.get("unit") or ""),
        currency=currency,
        description=str(dimension.get("description") or ""),
    )


def reserved_pricing_model(term_attributes: Optional[dict[str, Any]]) -> PricingModel:
    if term_attributes and term_attributes.get("LeaseContractLength") == "3yr":
        return PricingModel.RESERVED_3YR
    return PricingModel.RESERVED_1YR


def resource_name_for(attributes: dict[str, Any], service_type: str) -> str:
    instance_type = attributes.get("instanceType")
    if service_type == "Virtual Machines" and instance_type:
        return str(instance_type)
    if service_type == "Serverless Functions":
        architecture = attributes.get("architecture")
        return f"Lambda ({architecture})" if architecture else "Lambda"
    if service_type == "Serverless Containers":
        return "Fargate"

    if instance_type:
        return str(instance_type)
    if attributes.get("serviceName"):
        return str(attributes["serviceName"])
    return "Unknown"


def reserved_details(term_attributes: Optional[dict[str, Any]], line: PriceLine) -> PricingDetails:
    term_attributes = term_attributes or {}
    details = PricingDetails(
        term_length=term_attributes.get("LeaseContractLength"),
        payment_option=term_attributes.get("PurchaseOption"),
    )
    if line.unit.strip().lower() == UPFRONT_FEE_UNIT:
        details.upfront_cost = line.price
    else:
        details.hourly_rate = line.price
    return details


class AWSNormalizer(BaseNormalizer):
    provider = Provider.AWS.value

    def __init__(
        self,
        services: ServiceMappingRepository,
        regions: RegionRepository,
        units: Optional[UnitNormalizer] = None,
        validator: Optional[InputValidator] = None,
    ) -> None:
        super().__init__(services, regions, AWSResourceSpecExtractor(), units, validator)

    def parse_payload(self, payload: RawPayload) -> dict[str, Any]:
        return parse_aws_product(payload)

    def process(self, document: dict[str, Any], context: NormalizationContext) -> NormalizationResult:
        attributes = document["product"].get("attributes") or {}
        terms = document["terms"]
        service_type = context.service_mapping.canonical_service_type
        result = NormalizationResult()

        term_groups = (
            (terms.get("OnDemand") or {}, False),
            (terms.get("Reserved") or {}, True),
        )
        for group, reserved in term_groups:
            for term in group.values():
                term_attributes = term.get("termAttributes") or {}
                model = reserved_pricing_model(term_attributes) if reserved else PricingModel.ON_DEMAND
                effective_date = parse_effective_date(term.get("effectiveDate"))

                for dimension in (term.get("priceDimensions") or {}).values():
                    try:
                        line = extract_price_line(dimension)
                    except ValueError as exc:
                        result.errors.append(f"failed to extract pricing: {exc}")
                        continue
                    if line.price == 0:
                        logger.debug("Skipping zero-price line sku=%s", term.get("sku"))
                        result.skipped_count += 1
                        continue

                    record, error = self.build_record(
                        context,
                        line,
                        resource_name=resource_name_for(attributes, service_type),
                        resource_specs=self.extract_specs(context, attributes),
                        pricing_model=model.value,
                        pricing_details=reserved_details(term_attributes, line) if reserved else None,
                        provider_sku=term.get("sku") or document["product"]["sku"],
                        effective_date=effective_date,
                    )
                    if error is not None:
                        result.errors.append(error)
                    else:
                        result.records.append(record)

        result.error_count = len(result.errors)
        result.success = bool(result.records)
        return result
