"""Azure retail prices normalizer.

Each Azure retail item is a single meter, so one raw record yields at most one
canonical record.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pricing_atlas.contracts import PricingModel, Provider
from pricing_atlas.normalization.base import BaseNormalizer, PriceLine, parse_effective_date
from pricing_atlas.normalization.mappings import RegionRepository, ServiceMappingRepository
from pricing_atlas.normalization.payloads import parse_azure_item
from pricing_atlas.normalization.schema import (
    NormalizationContext,
    NormalizationResult,
    PricingDetails,
    RawPayload,
)
from pricing_atlas.normalization.specs import AzureResourceSpecExtractor
from pricing_atlas.normalization.units import UnitNormalizer
from pricing_atlas.normalization.validation import InputValidator

logger = logging.getLogger(__name__)

RESERVATION_TYPE = "reservation"
RESERVED_PAYMENT_OPTION = "All Upfront"
STORAGE_TIERS = ("Hot", "Cool", "Archive")

# Fields handed to the spec extractor and used for naming.
SPEC_ATTRIBUTE_KEYS = (
    "productName",
    "skuName",
    "armSkuName",
    "meterName",
    "serviceName",
    "serviceFamily",
    "location",
    "armRegionName",
    "unitOfMeasure",
    "type",
)


def _text(item: dict[str, Any], key: str) -> str:
    return str(item.get(key) or "")


def extract_price_line(item: dict[str, Any]) -> PriceLine:
    """Retail price, falling back to unit price when retail is zero or missing."""
    price = item.get("retailPrice") or item.get("unitPrice") or 0.0
    return PriceLine(
        price=float(price),
        unit=_text(item, "unitOfMeasure"),
        currency=_text(item, "currencyCode"),
        description=f"{_text(item, 'productName')} - {_text(item, 'meterName')}",
    )


def _is_three_year(item: dict[str, Any]) -> bool:
    names = (_text(item, "productName").lower(), _text(item, "skuName").lower())
    if any("3 year" in name for name in names):
        return True
    return _text(item, "reservationTerm").lower().startswith("3")


def pricing_model_for(item: dict[str, Any]) -> PricingModel:
    product = _text(item, "productName").lower()
    sku = _text(item, "skuName").lower()
    reserved = (
        "reserved" in product
        or "reserved" in sku
        or _text(item, "type").lower() == RESERVATION_TYPE
    )
    if reserved:
        return PricingModel.RESERVED_3YR if _is_three_year(item) else PricingModel.RESERVED_1YR
    if "spot" in product or "spot" in sku:
        return PricingModel.SPOT
    return PricingModel.ON_DEMAND


def pricing_details_for(item: dict[str, Any], model: PricingModel) -> PricingDetails:
    if not model.is_reserved:
        return PricingDetails()
    product = _text(item, "productName").lower()
    term = _text(item, "reservationTerm").lower()
    details = PricingDetails(payment_option=RESERVED_PAYMENT_OPTION)
    if "3 year" in product or term.startswith("3"):
        details.term_length = "3yr"
    elif "1 year" in product or term.startswith("1"):
        details.term_length = "1yr"
    return details


def resource_name_for(item: dict[str, Any], service_type: str) -> str:
    arm_sku = _text(item, "armSkuName")
    sku = _text(item, "skuName")
    if service_type in ("Virtual Machines", "Databases") and (arm_sku or sku):
        return arm_sku or sku
    if service_type == "Serverless Functions":
        return "Azure Functions"
    if service_type == "Storage":
        meter = _text(item, "meterName")
        for tier in STORAGE_TIERS:
            if tier in meter:
                return f"{tier} Storage"
        return "Storage"
    return arm_sku or sku or _text(item, "productName") or "Unknown"


class AzureNormalizer(BaseNormalizer):
    provider = Provider.AZURE.value

    def __init__(
        self,
        services: ServiceMappingRepository,
        regions: RegionRepository,
        units: Optional[UnitNormalizer] = None,
        validator: Optional[InputValidator] = None,
    ) -> None:
        super().__init__(services, regions, AzureResourceSpecExtractor(), units, validator)

    def parse_payload(self, payload: RawPayload) -> dict[str, Any]:
        return parse_azure_item(payload)

    def process(self, item: dict[str, Any], context: NormalizationContext) -> NormalizationResult:
        line = extract_price_line(item)
        if line.price == 0:
            logger.debug("Skipping zero-price meter %s", item.get("meterId"))
            return NormalizationResult(success=False, skipped_count=1)

        attributes = {key: item.get(key) for key in SPEC_ATTRIBUTE_KEYS}
        model = pricing_model_for(item)
        record, error = self.build_record(
            context,
            line,
            resource_name=resource_name_for(item, context.service_mapping.canonical_service_type),
            resource_specs=self.extract_specs(context, attributes),
            pricing_model=model.value,
            pricing_details=pricing_details_for(item, model),
            provider_sku=item.get("skuId") or None,
            effective_date=parse_effective_date(item.get("effectiveDate")),
        )
        if error is not None:
            return NormalizationResult.error(error)
        return NormalizationResult(success=True, records=[record])
