"""Vendor unit strings mapped onto a small canonical unit vocabulary."""

from __future__ import annotations

from typing import Protocol

UNIT_HOUR = "hour"
UNIT_GB = "gb"
UNIT_TB = "tb"
UNIT_GB_MONTH = "gb_month"
UNIT_REQUEST = "request"
UNIT_MILLION_REQUESTS = "million_requests"
UNIT_TRANSACTION = "transaction"
UNIT_INSTANCE = "instance"

AWS_UNITS = {
    "hrs": UNIT_HOUR,
    "hour": UNIT_HOUR,
    "hours": UNIT_HOUR,
    "gb-mo": UNIT_GB_MONTH,
    "gb-month": UNIT_GB_MONTH,
    "requests": UNIT_REQUEST,
    "request": UNIT_REQUEST,
    "1m requests": UNIT_MILLION_REQUESTS,
    "million requests": UNIT_MILLION_REQUESTS,
    "gb": UNIT_GB,
    "gigabyte": UNIT_GB,
    "tb": UNIT_TB,
    "terabyte": UNIT_TB,
    "instances": UNIT_INSTANCE,
    "instance": UNIT_INSTANCE,
    "second": "second",
    "seconds": "second",
    "lambda-gb-second": "lambda_gb_second",
    "vcpu-hours": "vcpu_hour",
    "api call": UNIT_REQUEST,
    "api calls": UNIT_REQUEST,
}

AZURE_UNITS = {
    "1 hour": UNIT_HOUR,
    "hour": UNIT_HOUR,
    "hours": UNIT_HOUR,
    "1 gb/month": UNIT_GB_MONTH,
    "gb/month": UNIT_GB_MONTH,
    "gb-month": UNIT_GB_MONTH,
    "1m requests": UNIT_MILLION_REQUESTS,
    "1 million requests": UNIT_MILLION_REQUESTS,
    "million requests": UNIT_MILLION_REQUESTS,
    "10k requests": UNIT_REQUEST,  # price divided by 10,000 in convert_value
    "10000 requests": UNIT_REQUEST,
    "1 gb": UNIT_GB,
    "gb": UNIT_GB,
    "1 tb": UNIT_TB,
    "tb": UNIT_TB,
    "1 transaction": UNIT_TRANSACTION,
    "transaction": UNIT_TRANSACTION,
    "transactions": UNIT_TRANSACTION,
    "vcpu hour": "vcpu_hour",
    "vcpu hours": "vcpu_hour",
    "compute unit": "compute_unit",
    "compute units": "compute_unit",
}

GENERIC_UNITS = {
    "hour": UNIT_HOUR,
    "hours": UNIT_HOUR,
    "hr": UNIT_HOUR,
    "hrs": UNIT_HOUR,
    "gb": UNIT_GB,
    "gigabyte": UNIT_GB,
    "gigabytes": UNIT_GB,
    "tb": UNIT_TB,
    "terabyte": UNIT_TB,
    "terabytes": UNIT_TB,
    "request": UNIT_REQUEST,
    "requests": UNIT_REQUEST,
    "transaction": UNIT_TRANSACTION,
    "transactions": UNIT_TRANSACTION,
    "instance": UNIT_INSTANCE,
    "instances": UNIT_INSTANCE,
}

PROVIDER_UNITS = {
    "aws": AWS_UNITS,
    "azure": AZURE_UNITS,
}

# (raw unit, canonical unit) -> divisor applied to the price
UNIT_SCALE_DIVISORS = {
    ("10k requests", UNIT_REQUEST): 10_000.0,
    ("10000 requests", UNIT_REQUEST): 10_000.0,
}

UNIT_CATEGORIES = {
    "time": {UNIT_HOUR, "second", "minute", "vcpu_hour", "lambda_gb_second"},
    "storage": {UNIT_GB, UNIT_TB, UNIT_GB_MONTH},
    "requests": {UNIT_REQUEST, UNIT_MILLION_REQUESTS, UNIT_TRANSACTION},
    "resources": {UNIT_INSTANCE, "compute_unit"},
}


class UnitNormalizer(Protocol):
    def normalize(self, provider: str, raw_unit: str) -> str: ...

    def convert_value(self, raw_unit: str, canonical_unit: str, value: float) -> float: ...


def _key(raw_unit: str) -> str:
    return (raw_unit or "").strip().lower()


def normalize_unit(provider: str, raw_unit: str) -> str:
    """Map a vendor unit onto the canonical vocabulary.

    Lookup is case-insensitive and whitespace-trimmed: provider table first,
    then the generic table. Unknown units are returned unchanged.
    """
    key = _key(raw_unit)
    provider_table = PROVIDER_UNITS.get((provider or "").strip().lower(), {})
    if key in provider_table:
        return provider_table[key]
    if key in GENERIC_UNITS:
        return GENERIC_UNITS[key]
    return raw_unit


def convert_value(raw_unit: str, canonical_unit: str, value: float) -> float:
    """Rescale `value` when the canonical unit is a different quantity."""
    divisor = UNIT_SCALE_DIVISORS.get((_key(raw_unit), canonical_unit))
    if divisor is None:
        return value
    return value / divisor


def unit_category(canonical_unit: str) -> str:
    for category, units in UNIT_CATEGORIES.items():
        if canonical_unit in units:
            return category
    return "other"


class StandardUnitNormalizer:
    """Stateless `UnitNormalizer` backed by the module lookup tables."""

    def normalize(self, provider: str, raw_unit: str) -> str:
        return normalize_unit(provider, raw_unit)

    def convert_value(self, raw_unit: str, canonical_unit: str, value: float) -> float:
        return convert_value(raw_unit, canonical_unit, value)

    def category(self, canonical_unit: str) -> str:
        return unit_category(canonical_unit)
