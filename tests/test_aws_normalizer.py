from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timezone

import pytest
from conftest import aws_product, aws_reserved_term, raw_record

from pricing_atlas.normalization.aws import (
    AWSNormalizer,
    extract_price_line,
    reserved_pricing_model,
    resource_name_for,
)
from pricing_atlas.normalization.base import UNMAPPED_REASON, NormalizationError
from pricing_atlas.normalization.payloads import PayloadShapeError, decode_payload


def test_on_demand_product_yields_canonical_record(aws_normalizer: AWSNormalizer) -> None:
    result = aws_normalizer.normalize(raw_record(11))

    assert result.success is True
    assert result.error_count == 0
    assert len(result.records) == 1
    record = result.records[0]
    assert record.provider == "aws"
    assert record.provider_service_code == "AmazonEC2"
    assert record.service_type == "Virtual Machines"
    assert record.service_category == "Compute"
    assert record.normalized_region == "us-east"
    assert record.provider_region == "us-east-1"
    assert record.resource_name == "m5.large"
    assert record.price_per_unit == 0.096
    assert record.unit == "hour"
    assert record.currency == "USD"
    assert record.pricing_model == "on_demand"
    assert record.provider_sku == "SKU123"
    assert record.source_raw_id == 11
    assert record.minimum_commitment == 1
    assert record.effective_date == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert record.resource_specs.vcpu == 2
    assert record.resource_specs.memory_gb == 8.0
    assert record.resource_specs.architecture == "x86_64"
    assert record.pricing_details.to_dict() == {}


def test_reserved_terms_emit_one_record_per_dimension(aws_normalizer: AWSNormalizer) -> None:
    payload = aws_product(reserved=aws_reserved_term())
    result = aws_normalizer.normalize(raw_record(12, payload=payload))

    assert result.success is True
    assert len(result.records) == 3
    reserved = [record for record in result.records if record.pricing_model != "on_demand"]
    assert len(reserved) == 2
    assert {record.pricing_model for record in reserved} == {"reserved_1yr"}
    assert {record.provider_sku for record in reserved} == {"SKU123"}

    upfront = next(record for record in reserved if record.pricing_details.upfront_cost is not None)
    hourly = next(record for record in reserved if record.pricing_details.hourly_rate is not None)
    assert upfront.price_per_unit == 500.0
    assert upfront.pricing_details.term_length == "1yr"
    assert upfront.pricing_details.payment_option == "Partial Upfront"
    assert upfront.pricing_details.hourly_rate is None
    assert hourly.price_per_unit == 0.025
    assert hourly.unit == "hour"
    assert hourly.pricing_details.upfront_cost is None


def test_three_year_lease_maps_to_reserved_3yr(aws_normalizer: AWSNormalizer) -> None:
    payload = aws_product(reserved=aws_reserved_term(lease="3yr", purchase_option="All Upfront"))
    result = aws_normalizer.normalize(raw_record(13, payload=payload))

    models = {record.pricing_model for record in result.records}
    assert models == {"on_demand", "reserved_3yr"}


def test_zero_price_line_is_skipped_not_an_error(aws_normalizer: AWSNormalizer) -> None:
    payload = aws_product(reserved=aws_reserved_term(upfront="0"))
    result = aws_normalizer.normalize(raw_record(14, payload=payload))

    assert result.success is True
    assert len(result.records) == 2
    assert result.skipped_count == 1
    assert result.error_count == 0


def test_all_zero_prices_yield_no_records(aws_normalizer: AWSNormalizer) -> None:
    result = aws_normalizer.normalize(raw_record(15, payload=aws_product(on_demand_price="0.0000000000")))

    assert result.success is False
    assert result.records == []
    assert result.skipped_count == 1
    assert result.error_count == 0


def test_unmapped_service_is_skipped(aws_normalizer: AWSNormalizer) -> None:
    result = aws_normalizer.normalize(raw_record(16, service_code="AmazonS3"))

    assert result.success is False
    assert result.skipped_count == 1
    assert result.error_count == 0
    assert result.errors == [UNMAPPED_REASON]


def test_unmapped_region_is_skipped(aws_normalizer: AWSNormalizer) -> None:
    result = aws_normalizer.normalize(raw_record(17, region="ap-south-1"))

    assert result.skipped_count == 1
    assert result.error_count == 0
    assert result.records == []


def test_invalid_json_is_reported_as_validation_error(aws_normalizer: AWSNormalizer) -> None:
    result = aws_normalizer.normalize(raw_record(18, payload="{broken"))

    assert result.success is False
    assert result.error_count == 1
    assert result.errors[0].startswith("validation failed: invalid JSON format")


def test_missing_terms_is_a_structural_error(aws_normalizer: AWSNormalizer) -> None:
    result = aws_normalizer.normalize(raw_record(19, payload={"product": {"sku": "SKU1"}}))

    assert result.error_count == 1
    assert result.errors[0].startswith("invalid aws payload structure:")
    assert "terms" in result.errors[0]


def test_empty_terms_is_a_structural_error(aws_normalizer: AWSNormalizer) -> None:
    payload = {"product": {"sku": "SKU1"}, "terms": {"OnDemand": {}}}
    result = aws_normalizer.normalize(raw_record(20, payload=payload))

    assert result.error_count == 1
    assert result.errors[0] == "invalid aws payload structure: no pricing terms found"


def test_wrong_provider_is_rejected(aws_normalizer: AWSNormalizer) -> None:
    result = aws_normalizer.normalize(raw_record(21, provider="azure"))

    assert result.error_count == 1
    assert "unsupported provider" in result.errors[0]


def test_unparseable_price_is_counted_per_line(aws_normalizer: AWSNormalizer) -> None:
    payload = aws_product(reserved=aws_reserved_term(hourly="n/a"))
    result = aws_normalizer.normalize(raw_record(22, payload=payload))

    assert result.success is True
    assert len(result.records) == 2
    assert result.error_count == 1
    assert result.errors[0].startswith("failed to extract pricing:")


def test_out_of_range_price_fails_record_validation(aws_normalizer: AWSNormalizer) -> None:
    result = aws_normalizer.normalize(raw_record(23, payload=aws_product(on_demand_price="1000000")))

    assert result.success is False
    assert result.error_count == 1
    assert result.errors[0].startswith("record validation failed: price must be between 0")


def test_lambda_records_are_named_by_architecture(aws_normalizer: AWSNormalizer) -> None:
    payload = aws_product(architecture="arm64")
    result = aws_normalizer.normalize(raw_record(24, payload=payload, service_code="AWSLambda"))

    assert [record.resource_name for record in result.records] == ["Lambda (arm64)"]
    assert result.records[0].service_type == "Serverless Functions"
    assert result.records[0].provider_service_code == "AWSLambda"


def test_every_record_points_back_at_its_raw_row(aws_normalizer: AWSNormalizer) -> None:
    payload = aws_product(reserved=aws_reserved_term(lease="3yr"))
    result = aws_normalizer.normalize(raw_record(25, payload=payload))

    assert result.records
    for record in result.records:
        assert record.source_raw_id == 25
        assert 0 < record.price_per_unit <= 999_999.99
        assert len(record.currency) == 3
        assert record.resource_name


def test_price_line_uses_first_currency() -> None:
    line = extract_price_line({"unit": "Hrs", "pricePerUnit": {"USD": "0.5", "CNY": "3.6"}})

    assert line.price == 0.5
    assert line.currency == "USD"
    assert line.unit == "Hrs"


def test_reserved_model_defaults_to_one_year() -> None:
    assert reserved_pricing_model(None).value == "reserved_1yr"
    assert reserved_pricing_model({"LeaseContractLength": "3yr"}).value == "reserved_3yr"


def test_resource_name_fallbacks() -> None:
    assert resource_name_for({}, "Serverless Containers") == "Fargate"
    assert resource_name_for({"instanceType": "db.r5.large"}, "Databases") == "db.r5.large"
    assert resource_name_for({"serviceName": "Amazon S3"}, "Storage") == "Amazon S3"
    assert resource_name_for({}, "Storage") == "Unknown"


def test_bytes_payload_is_accepted(aws_normalizer: AWSNormalizer) -> None:
    record = replace(raw_record(26), payload=json.dumps(aws_product()).encode("utf-8"))
    result = aws_normalizer.normalize(record)

    assert result.success is True
    assert len(result.records) == 1


def test_invalid_utf8_bytes_payload_is_an_error(aws_normalizer: AWSNormalizer) -> None:
    payload = json.dumps(aws_product(sku="A")).encode("utf-8").replace(b'"A"', b'"A\xff"', 1)
    result = aws_normalizer.normalize(replace(raw_record(27), payload=payload))

    assert result.success is False
    assert result.records == []
    assert result.error_count == 1
    assert result.errors[0].startswith("validation failed: invalid JSON format")


def test_decode_payload_wraps_bad_utf8() -> None:
    with pytest.raises(PayloadShapeError, match="failed to parse JSON"):
        decode_payload(b'{"product": "\xff"}')


def test_check_provider_raises_normalization_error(aws_normalizer: AWSNormalizer) -> None:
    with pytest.raises(NormalizationError) as excinfo:
        aws_normalizer.check_provider(raw_record(28, provider="azure"))

    assert excinfo.value.provider == "azure"
    assert excinfo.value.service_code == "Virtual Machines"
    assert excinfo.value.region == "eastus"
    assert str(excinfo.value) == "unsupported provider for aws normalizer"
