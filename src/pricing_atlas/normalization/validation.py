"""Input and output validation for the normalizers.

Both checks return a `ValidationFailure` describing the first constraint that
failed (or None), so callers can report which field was rejected.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from pricing_atlas.config import (
    CURRENCY_CODE_LENGTH,
    MAX_PRICE_PER_UNIT,
    MAX_REGION_LENGTH,
    MAX_RESOURCE_NAME_LENGTH,
    MAX_SERVICE_CODE_LENGTH,
    MIN_PRICE_PER_UNIT,
)
from pricing_atlas.contracts import PricingModel, Provider
from pricing_atlas.normalization.schema import NormalizedPricing, RawPricingRecord

PRICING_MODEL_VALUES = {model.value for model in PricingModel}


@dataclass(frozen=True)
class ValidationFailure:
    field: str
    value: Any
    message: str

    def render(self, context: str) -> str:
        return f"{context}: {self.message} (field={self.field})"

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


def _text(value: Any) -> str:
    return str(value or "").strip()


def _check_provider(provider: str) -> Optional[ValidationFailure]:
    token = _text(provider)
    if not token:
        return ValidationFailure("provider", token, "provider cannot be empty")
    if token not in Provider.values():
        return ValidationFailure("provider", token, "unsupported provider")
    return None


def _check_service_code(service_code: str) -> Optional[ValidationFailure]:
    token = _text(service_code)
    if not token:
        return ValidationFailure("service_code", token, "service code cannot be empty")
    if len(token) > MAX_SERVICE_CODE_LENGTH:
        return ValidationFailure("service_code", token, "service code too long")
    return None


def _check_region(region: str) -> Optional[ValidationFailure]:
    token = _text(region)
    if not token:
        return ValidationFailure("region", token, "region cannot be empty")
    if len(token) > MAX_REGION_LENGTH:
        return ValidationFailure("region", token, "region name too long")
    return None


def _check_payload(payload: Any) -> Optional[ValidationFailure]:
    if payload is None:
        return ValidationFailure("payload", payload, "raw data cannot be empty")
    if isinstance(payload, (dict, list)):
        if not payload:
            return ValidationFailure("payload", payload, "raw data cannot be empty")
        return None
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            return ValidationFailure("payload", payload, "invalid JSON format")
    if not str(payload).strip():
        return ValidationFailure("payload", payload, "raw data cannot be empty")
    try:
        json.loads(payload)
    except (TypeError, ValueError):
        return ValidationFailure("payload", payload, "invalid JSON format")
    return None


def validate_input(record: RawPricingRecord) -> Optional[ValidationFailure]:
    """Check a raw record before any parsing or lookup happens."""
    for failure in (
        _check_provider(record.provider),
        _check_service_code(record.service_code),
        _check_region(record.region),
        _check_payload(record.payload),
    ):
        if failure is not None:
            return failure
    if record.id is None or record.id <= 0:
        return ValidationFailure("id", record.id, "raw data ID must be positive")
    return None


def validate_output(pricing: NormalizedPricing) -> Optional[ValidationFailure]:
    """Check a freshly built canonical record against its own invariants."""
    failure = _check_provider(pricing.provider) or _check_service_code(
        pricing.provider_service_code
    )
    if failure is not None:
        return failure

    name = _text(pricing.resource_name)
    if not name:
        return ValidationFailure("resource_name", name, "resource name cannot be empty")
    if len(name) > MAX_RESOURCE_NAME_LENGTH:
        return ValidationFailure("resource_name", name, "resource name too long")

    price = pricing.price_per_unit
    if price is None or not (MIN_PRICE_PER_UNIT < price <= MAX_PRICE_PER_UNIT):
        return ValidationFailure(
            "price_per_unit", price, f"price must be between 0 and {MAX_PRICE_PER_UNIT}"
        )

    if not _text(pricing.unit):
        return ValidationFailure("unit", pricing.unit, "unit cannot be empty")

    currency = _text(pricing.currency)
    if not currency:
        return ValidationFailure("currency", currency, "currency cannot be empty")
    if len(currency) != CURRENCY_CODE_LENGTH:
        return ValidationFailure("currency", currency, "currency must be 3-letter ISO code")

    model = _text(pricing.pricing_model)
    if not model:
        return ValidationFailure("pricing_model", model, "pricing model cannot be empty")
    if model not in PRICING_MODEL_VALUES:
        return ValidationFailure("pricing_model", model, "unsupported pricing model")
    return None


class InputValidator:
    """Object form of the module checks, injected into normalizers."""

    def validate_input(self, record: RawPricingRecord) -> Optional[ValidationFailure]:
        return validate_input(record)

    def validate_output(self, pricing: NormalizedPricing) -> Optional[ValidationFailure]:
        return validate_output(pricing)
