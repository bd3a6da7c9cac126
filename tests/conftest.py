from __future__ import annotations

import json
import threading
from typing import Any, Optional, Sequence

import pytest

from pricing_atlas.normalization.aws import AWSNormalizer
from pricing_atlas.normalization.azure import AzureNormalizer
from pricing_atlas.normalization.mappings import RegionRepository, ServiceMappingRepository
from pricing_atlas.normalization.schema import (
    NormalizedPricing,
    NormalizedRegion,
    RawPricingRecord,
    ServiceMapping,
)

SERVICE_MAPPINGS = [
    ServiceMapping(
        id=1,
        provider="aws",
        vendor_service_name="AmazonEC2",
        vendor_service_code="AmazonEC2",
        canonical_service_type="Virtual Machines",
        service_category="Compute",
        service_family="Compute",
    ),
    ServiceMapping(
        id=2,
        provider="aws",
        vendor_service_name="AWSLambda",
        canonical_service_type="Serverless Functions",
        service_category="Compute",
        service_family="Serverless",
    ),
    ServiceMapping(
        id=3,
        provider="azure",
        vendor_service_name="Virtual Machines",
        canonical_service_type="Virtual Machines",
        service_category="Compute",
        service_family="Compute",
    ),
    ServiceMapping(
        id=4,
        provider="azure",
        vendor_service_name="Storage",
        canonical_service_type="Storage",
        service_category="Storage",
        service_family="Object Storage",
    ),
]

REGIONS = [
    NormalizedRegion(
        id=1,
        canonical_code="us-east",
        display_name="US East",
        aws_region="us-east-1",
        azure_region="eastus",
        country="United States",
        continent="North America",
    ),
    NormalizedRegion(
        id=2,
        canonical_code="eu-west",
        display_name="EU West",
        aws_region="eu-west-1",
        azure_region="westeurope",
    ),
]


class FakeServiceMappingStore:
    def __init__(self, mappings: Optional[list[ServiceMapping]] = None) -> None:
        self.mappings = list(SERVICE_MAPPINGS if mappings is None else mappings)
        self.lookups = 0

    def find_service_mapping(self, provider: str, service_name: str) -> Optional[ServiceMapping]:
        self.lookups += 1
        for mapping in self.mappings:
            if mapping.provider == provider and service_name in (
                mapping.vendor_service_name,
                mapping.vendor_service_code,
            ):
                return mapping
        return None

    def list_service_mappings(self) -> list[ServiceMapping]:
        return list(self.mappings)


class FakeRegionStore:
    def __init__(self, regions: Optional[list[NormalizedRegion]] = None) -> None:
        self.regions = list(REGIONS if regions is None else regions)
        self.lookups = 0

    def find_region(self, provider: str, provider_region: str) -> Optional[NormalizedRegion]:
        self.lookups += 1
        for region in self.regions:
            if region.provider_region(provider) == provider_region:
                return region
        return None

    def list_regions(self) -> list[NormalizedRegion]:
        return list(self.regions)


class FakeRawSource:
    """In-memory raw pricing keyed by provider.

    When `gate` is set, every fetch after the first waits on it and
    `blocked` is set as soon as such a fetch starts.
    """

    def __init__(self, records: Sequence[RawPricingRecord], gate: Optional[threading.Event] = None) -> None:
        self.records = sorted(records, key=lambda record: record.id)
        self.gate = gate
        self.blocked = threading.Event()
        self.fetch_calls = 0
        self.fail_at_offset: Optional[int] = None

    def _matching(self, provider: str, regions: Sequence[str], services: Sequence[str]) -> list[RawPricingRecord]:
        return [
            record
            for record in self.records
            if record.provider == provider
            and (not regions or record.region in regions)
            and (not services or record.service_code in services)
        ]

    def count(self, provider: str, regions: Sequence[str] = (), services: Sequence[str] = ()) -> int:
        return len(self._matching(provider, regions, services))

    def fetch_batch(
        self,
        provider: str,
        regions: Sequence[str],
        services: Sequence[str],
        offset: int,
        limit: int,
    ) -> list[RawPricingRecord]:
        self.fetch_calls += 1
        if self.fail_at_offset is not None and offset >= self.fail_at_offset:
            raise ConnectionError("raw storage unavailable")
        if self.gate is not None and self.fetch_calls > 1:
            self.blocked.set()
            self.gate.wait(timeout=10)
        return self._matching(provider, regions, services)[offset : offset + limit]


class FakeSink:
    def __init__(self) -> None:
        self.records: list[NormalizedPricing] = []
        self.insert_calls = 0
        self.cleared = 0
        self.fail_inserts = False
        self.orphans = 0
        self._lock = threading.Lock()

    def bulk_insert(self, records: Sequence[NormalizedPricing]) -> int:
        with self._lock:
            self.insert_calls += 1
            if self.fail_inserts:
                raise RuntimeError("database is read-only")
            self.records.extend(records)
        return len(records)

    def clear(self) -> int:
        with self._lock:
            removed = len(self.records)
            self.records.clear()
            self.cleared += 1
        return removed

    def delete_orphans(self) -> int:
        removed, self.orphans = self.orphans, 0
        return removed


def aws_product(
    sku: str = "SKU123",
    instance_type: str = "m5.large",
    on_demand_price: str = "0.0960000000",
    reserved: Optional[dict[str, Any]] = None,
    **attributes: Any,
) -> dict[str, Any]:
    product_attributes = {
        "instanceType": instance_type,
        "vcpu": "2",
        "memory": "8 GiB",
        "storage": "EBS only",
        "networkPerformance": "Up to 10 Gigabit",
        "gpu": "NA",
    }
    product_attributes.update(attributes)
    terms: dict[str, Any] = {
        "OnDemand": {
            f"{sku}.JRTCKXETXF": {
                "offerTermCode": "JRTCKXETXF",
                "sku": sku,
                "effectiveDate": "2024-01-01T00:00:00Z",
                "priceDimensions": {
                    f"{sku}.JRTCKXETXF.6YS6EN2CT7": {
                        "description": f"$0.096 per On Demand Linux {instance_type} Instance Hour",
                        "unit": "Hrs",
                        "pricePerUnit": {"USD": on_demand_price},
                    }
                },
                "termAttributes": {},
            }
        }
    }
    if reserved is not None:
        terms["Reserved"] = reserved
    return {
        "product": {"sku": sku, "productFamily": "Compute Instance", "attributes": product_attributes},
        "terms": terms,
    }


def aws_reserved_term(
    sku: str = "SKU123",
    lease: str = "1yr",
    purchase_option: str = "Partial Upfront",
    upfront: str = "500",
    hourly: str = "0.0250000000",
) -> dict[str, Any]:
    return {
        f"{sku}.HU7G6KETJZ": {
            "offerTermCode": "HU7G6KETJZ",
            "sku": sku,
            "effectiveDate": "2024-01-01T00:00:00Z",
            "priceDimensions": {
                f"{sku}.HU7G6KETJZ.2TG2D8R56U": {
                    "description": "Upfront Fee",
                    "unit": "Quantity",
                    "pricePerUnit": {"USD": upfront},
                },
                f"{sku}.HU7G6KETJZ.6YS6EN2CT7": {
                    "description": "Linux/UNIX (Amazon VPC), m5.large reserved instance applied",
                    "unit": "Hrs",
                    "pricePerUnit": {"USD": hourly},
                },
            },
            "termAttributes": {
                "LeaseContractLength": lease,
                "OfferingClass": "standard",
                "PurchaseOption": purchase_option,
            },
        }
    }


def azure_item(**overrides: Any) -> dict[str, Any]:
    item = {
        "currencyCode": "USD",
        "tierMinimumUnits": 0.0,
        "retailPrice": 0.096,
        "unitPrice": 0.096,
        "armRegionName": "eastus",
        "location": "US East",
        "effectiveDate": "2024-02-01T00:00:00Z",
        "meterId": "000a794b-bdb0-58be-a0cd-0c3a0f222923",
        "meterName": "D2s v3",
        "productId": "DZH318Z0BQ4L",
        "skuId": "DZH318Z0BQ4L/00TG",
        "productName": "Virtual Machines Dsv3 Series",
        "skuName": "D2s v3",
        "serviceName": "Virtual Machines",
        "serviceId": "DZH313Z7MMC8",
        "serviceFamily": "Compute",
        "unitOfMeasure": "1 Hour",
        "type": "Consumption",
        "isPrimaryMeterRegion": True,
        "armSkuName": "Standard_D2s_v3",
    }
    item.update(overrides)
    return item


def raw_record(
    record_id: int,
    provider: str = "aws",
    payload: Any = None,
    service_code: Optional[str] = None,
    region: Optional[str] = None,
) -> RawPricingRecord:
    if payload is None:
        payload = aws_product() if provider == "aws" else azure_item()
    if service_code is None:
        service_code = "AmazonEC2" if provider == "aws" else "Virtual Machines"
    if region is None:
        region = "us-east-1" if provider == "aws" else "eastus"
    return RawPricingRecord(
        id=record_id,
        provider=provider,
        service_code=service_code,
        region=region,
        payload=json.dumps(payload) if not isinstance(payload, str) else payload,
        collection_id="collection-1",
    )


@pytest.fixture
def service_store() -> FakeServiceMappingStore:
    return FakeServiceMappingStore()


@pytest.fixture
def region_store() -> FakeRegionStore:
    return FakeRegionStore()


@pytest.fixture
def services(service_store: FakeServiceMappingStore) -> ServiceMappingRepository:
    return ServiceMappingRepository(service_store)


@pytest.fixture
def regions(region_store: FakeRegionStore) -> RegionRepository:
    return RegionRepository(region_store)


@pytest.fixture
def aws_normalizer(services: ServiceMappingRepository, regions: RegionRepository) -> AWSNormalizer:
    return AWSNormalizer(services, regions)


@pytest.fixture
def azure_normalizer(services: ServiceMappingRepository, regions: RegionRepository) -> AzureNormalizer:
    return AzureNormalizer(services, regions)
