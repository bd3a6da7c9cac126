from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest
from conftest import REGIONS, SERVICE_MAPPINGS, aws_product, aws_reserved_term, azure_item, raw_record
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pricing_atlas.contracts import JobStatus, PricingFilter
from pricing_atlas.etl.pipeline import build_pipeline
from pricing_atlas.normalization.aws import AWSNormalizer
from pricing_atlas.normalization.schema import NormalizedPricing, PricingDetails, ResourceSpecs
from pricing_atlas.storage.engine import (
    StoragePersistenceError,
    create_all_tables,
    create_database_engine,
    create_session_factory,
    transaction_scope,
)
from pricing_atlas.storage.models import NormalizedRegionRow, ServiceMappingRow
from pricing_atlas.storage.repositories import (
    SqlNormalizedPricingRepository,
    SqlRawPricingSource,
    SqlRegionStore,
    SqlServiceMappingStore,
)


def _session_factory(url: str = "sqlite://") -> sessionmaker:
    engine = create_database_engine(url, echo=False)
    create_all_tables(engine)
    return create_session_factory(engine)


def _seed_reference_data(session_factory: sessionmaker) -> None:
    with transaction_scope(session_factory) as session:
        for mapping in SERVICE_MAPPINGS:
            session.add(
                ServiceMappingRow(
                    provider=mapping.provider,
                    vendor_service_name=mapping.vendor_service_name,
                    vendor_service_code=mapping.vendor_service_code,
                    canonical_service_type=mapping.canonical_service_type,
                    service_category=mapping.service_category,
                    service_family=mapping.service_family,
                )
            )
        for region in REGIONS:
            session.add(
                NormalizedRegionRow(
                    canonical_code=region.canonical_code,
                    display_name=region.display_name,
                    aws_region=region.aws_region,
                    azure_region=region.azure_region,
                    country=region.country,
                    continent=region.continent,
                )
            )


def _pricing(resource_name: str, price: float, **overrides) -> NormalizedPricing:
    values = {
        "provider": "aws",
        "provider_service_code": "AmazonEC2",
        "service_category": "Compute",
        "service_family": "Compute",
        "service_type": "Virtual Machines",
        "normalized_region": "us-east",
        "provider_region": "us-east-1",
        "resource_name": resource_name,
        "price_per_unit": price,
        "unit": "hour",
        "currency": "USD",
        "pricing_model": "on_demand",
        "source_raw_id": 1,
    }
    values.update(overrides)
    return NormalizedPricing(**values)


@pytest.fixture
def session_factory() -> sessionmaker:
    return _session_factory()


def test_raw_source_counts_and_pages_in_id_order(session_factory: sessionmaker) -> None:
    source = SqlRawPricingSource(session_factory)
    ids = source.add(
        [
            {"provider": "aws", "service_code": "AmazonEC2", "region": "us-east-1", "payload": aws_product("A")},
            {"provider": "aws", "service_code": "AmazonEC2", "region": "eu-west-1", "payload": aws_product("B")},
            {"provider": "aws", "service_code": "AWSLambda", "region": "us-east-1", "payload": aws_product("C")},
            {"provider": "azure", "service_code": "Virtual Machines", "region": "eastus", "payload": azure_item()},
        ]
    )

    assert ids == sorted(ids)
    assert source.count("aws") == 3
    assert source.count("aws", regions=["us-east-1"]) == 2
    assert source.count("aws", services=["AWSLambda"]) == 1
    assert source.count("azure", regions=["eastus"], services=["Virtual Machines"]) == 1

    first = source.fetch_batch("aws", [], [], 0, 2)
    second = source.fetch_batch("aws", [], [], 2, 2)
    assert [record.id for record in first + second] == ids[:3]
    assert source.fetch_batch("aws", [], [], 3, 2) == []
    assert isinstance(first[0].payload, str)


def test_mapping_stores_read_reference_tables(session_factory: sessionmaker) -> None:
    _seed_reference_data(session_factory)
    services = SqlServiceMappingStore(session_factory)
    regions = SqlRegionStore(session_factory)

    assert services.find_service_mapping("aws", "AmazonEC2").canonical_service_type == "Virtual Machines"
    assert services.find_service_mapping("aws", "AWSLambda").service_family == "Serverless"
    assert services.find_service_mapping("aws", "Storage") is None
    assert len(services.list_service_mappings()) == 4

    assert regions.find_region("azure", "westeurope").canonical_code == "eu-west"
    assert regions.find_region("aws", "westeurope") is None
    assert [region.canonical_code for region in regions.list_regions()] == ["us-east", "eu-west"]
    with pytest.raises(ValueError):
        regions.find_region("gcp", "us-central1")


def test_bulk_insert_and_filtered_query(session_factory: sessionmaker) -> None:
    repository = SqlNormalizedPricingRepository(session_factory)
    inserted = repository.bulk_insert(
        [
            _pricing("m5.large", 0.096, resource_specs=ResourceSpecs(vcpu=2, memory_gb=8.0)),
            _pricing("m5.xlarge", 0.192, resource_specs=ResourceSpecs(vcpu=4, memory_gb=16.0)),
            _pricing(
                "m5.large",
                0.06,
                pricing_model="reserved_1yr",
                pricing_details=PricingDetails(term_length="1yr", hourly_rate=0.06),
                resource_specs=ResourceSpecs(vcpu=2),
            ),
            _pricing(
                "Standard_D2s_v3",
                0.096,
                provider="azure",
                provider_service_code="Virtual Machines",
                normalized_region="eu-west",
                provider_region="westeurope",
                resource_specs=ResourceSpecs(vcpu=2, storage_type="Premium SSD"),
            ),
        ]
    )

    assert inserted == 4
    assert repository.count() == 4
    assert [row.price_per_unit for row in repository.query()] == [0.06, 0.096, 0.096, 0.192]

    reserved = repository.query(PricingFilter(pricing_model="reserved_1yr"))
    assert len(reserved) == 1
    assert reserved[0].pricing_details.term_length == "1yr"
    assert reserved[0].id is not None

    azure = repository.query(PricingFilter(provider="azure"))
    assert azure[0].resource_specs.storage_type == "Premium SSD"
    assert azure[0].provider_region == "westeurope"

    two_vcpu = PricingFilter(vcpu=2)
    assert repository.count(two_vcpu) == 3
    assert {row.resource_name for row in repository.query(two_vcpu)} == {"m5.large", "Standard_D2s_v3"}

    priced = PricingFilter(min_price_per_unit=0.09, max_price_per_unit=0.1, order_by="resource_name")
    assert [row.resource_name for row in repository.query(priced)] == ["Standard_D2s_v3", "m5.large"]

    page = repository.query(PricingFilter(order_by="price_per_unit", order_direction="DESC", limit=2, offset=1))
    assert [row.price_per_unit for row in page] == [0.096, 0.096]


def test_bulk_insert_of_nothing_is_a_noop(session_factory: sessionmaker) -> None:
    assert SqlNormalizedPricingRepository(session_factory).bulk_insert([]) == 0


def test_bulk_insert_is_all_or_nothing(session_factory: sessionmaker) -> None:
    repository = SqlNormalizedPricingRepository(session_factory)
    broken = replace(_pricing("bad", 1.0), resource_name=None)

    with pytest.raises(StoragePersistenceError):
        repository.bulk_insert([_pricing("good", 1.0), broken])
    assert repository.count() == 0


def test_clear_and_orphan_cleanup(session_factory: sessionmaker) -> None:
    source = SqlRawPricingSource(session_factory)
    (raw_id,) = source.add(
        [{"provider": "aws", "service_code": "AmazonEC2", "region": "us-east-1", "payload": aws_product()}]
    )
    repository = SqlNormalizedPricingRepository(session_factory)
    repository.bulk_insert(
        [
            _pricing("kept", 1.0, source_raw_id=raw_id),
            _pricing("orphan", 1.0, source_raw_id=raw_id + 100),
            _pricing("orphan", 2.0, source_raw_id=raw_id + 101),
        ]
    )

    assert repository.delete_orphans() == 2
    assert [row.resource_name for row in repository.query()] == ["kept"]
    assert repository.clear() == 1
    assert repository.count() == 0


def test_build_pipeline_normalizes_database_rows(tmp_path: Path) -> None:
    session_factory = _session_factory(f"sqlite:///{tmp_path / 'atlas.db'}")
    _seed_reference_data(session_factory)
    source = SqlRawPricingSource(session_factory)
    source.add(
        [
            {
                "provider": "aws",
                "service_code": "AmazonEC2",
                "region": "us-east-1",
                "payload": aws_product("A", reserved=aws_reserved_term("A")),
            },
            {"provider": "aws", "service_code": "AmazonS3", "region": "us-east-1", "payload": aws_product("B")},
            {"provider": "azure", "service_code": "Virtual Machines", "region": "westeurope", "payload": azure_item()},
        ]
    )
    pipeline = build_pipeline(session_factory, warm_caches=True)

    job = pipeline.start_job("normalize_all", {"batch_size": 2, "concurrent_workers": 1})
    assert job.wait(10)

    assert job.status is JobStatus.COMPLETED
    assert job.progress.processed_records == 3
    assert job.progress.normalized_records == 4
    assert job.progress.skipped_records == 1
    repository = SqlNormalizedPricingRepository(session_factory)
    assert repository.count() == 4
    azure = repository.query(PricingFilter(provider="azure"))
    assert azure[0].normalized_region == "eu-west"
    assert azure[0].resource_specs.vcpu == 2


def test_renormalizing_same_raw_record_only_duplicates_rows(
    session_factory: sessionmaker, aws_normalizer: AWSNormalizer
) -> None:
    repository = SqlNormalizedPricingRepository(session_factory)
    record = raw_record(9, payload=aws_product(reserved=aws_reserved_term()))

    first = aws_normalizer.normalize(record)
    second = aws_normalizer.normalize(record)
    repository.bulk_insert(first.records)
    repository.bulk_insert(second.records)

    assert len(first.records) == 3
    assert first.records == second.records
    assert repository.count() == 2 * len(first.records)
    rows = repository.query(PricingFilter(order_by="id"))
    assert {row.source_raw_id for row in rows} == {9}
    assert sorted(row.price_per_unit for row in rows[:3]) == sorted(
        row.price_per_unit for row in rows[3:]
    )


def test_in_memory_sqlite_uses_single_static_connection(tmp_path: Path) -> None:
    memory = create_database_engine("sqlite://", echo=False)
    on_disk = create_database_engine(f"sqlite:///{tmp_path / 'atlas.db'}", echo=False)

    assert isinstance(memory.pool, StaticPool)
    assert not isinstance(on_disk.pool, StaticPool)
