"""Decoding and structural validation of raw vendor payloads.

Shapes are described by JSON Schema files shipped in `schemas/`; a payload
that does not match is a per-record structural error.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from pricing_atlas.normalization.schema import RawPayload

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"
AWS_PRODUCT_SCHEMA = "aws_product.schema.json"
AZURE_RETAIL_PRICE_SCHEMA = "azure_retail_price.schema.json"


class PayloadShapeError(ValueError):
    """Raised when a payload does not match its provider's known shape."""


@lru_cache(maxsize=None)
def _validator(schema_name: str) -> Draft202012Validator:
    with (SCHEMA_DIR / schema_name).open("r", encoding="utf-8") as handle:
        schema = json.load(handle)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def decode_payload(payload: RawPayload) -> Any:
    """Return the decoded JSON document for a raw payload."""
    if isinstance(payload, (dict, list)):
        return payload
    try:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise PayloadShapeError(f"failed to parse JSON: {exc}") from exc


def check_shape(schema_name: str, document: Any) -> None:
    validator = _validator(schema_name)
    errors = sorted(validator.iter_errors(document), key=lambda e: list(e.path))
    if errors:
        first = errors[0]
        location = ".".join(str(token) for token in first.path) or "<root>"
        raise PayloadShapeError(f"schema validation failed at {location}: {first.message}")


def parse_aws_product(payload: RawPayload) -> dict[str, Any]:
    """Decode and check an AWS price list product (product + terms)."""
    document = decode_payload(payload)
    check_shape(AWS_PRODUCT_SCHEMA, document)
    terms = document["terms"]
    if not terms.get("OnDemand") and not terms.get("Reserved"):
        raise PayloadShapeError("no pricing terms found")
    return document


def parse_azure_item(payload: RawPayload) -> dict[str, Any]:
    """Decode and check one Azure retail prices item."""
    document = decode_payload(payload)
    check_shape(AZURE_RETAIL_PRICE_SCHEMA, document)
    return document
