"""SQL implementations of the storage capabilities the pipeline consumes.

- `SqlRawPricingSource`: counted, offset-paginated reads of raw pricing.
- `SqlServiceMappingStore` / `SqlRegionStore`: mapping table lookups.
- `SqlNormalizedPricingRepository`: bulk insert, filtered query, clear and
  orphan cleanup of normalized pricing.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import sessionmaker

from pricing_atlas.contracts import PricingFilter
from pricing_atlas.normalization.schema import (
    NormalizedPricing,
    NormalizedRegion,
    PricingDetails,
    RawPricingRecord,
    ResourceSpecs,
    ServiceMapping,
)
from pricing_atlas.storage.engine import transaction_scope
from pricing_atlas.storage.models import (
    NormalizedPricingRow,
    NormalizedRegionRow,
    RawPricingRow,
    ServiceMappingRow,
)

logger = logging.getLogger(__name__)


def _raw_filters(provider: str, regions: Sequence[str], services: Sequence[str]) -> list:
    clauses = [RawPricingRow.provider == provider]
    if regions:
        clauses.append(RawPricingRow.region.in_(list(regions)))
    if services:
        clauses.append(RawPricingRow.service_code.in_(list(services)))
    return clauses


class SqlRawPricingSource:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def count(self, provider: str, regions: Sequence[str] = (), services: Sequence[str] = ()) -> int:
        with transaction_scope(self._session_factory) as session:
            stmt = select(func.count(RawPricingRow.id)).where(*_raw_filters(provider, regions, services))
            return int(session.execute(stmt).scalar_one())

    def fetch_batch(
        self,
        provider: str,
        regions: Sequence[str],
        services: Sequence[str],
        offset: int,
        limit: int,
    ) -> list[RawPricingRecord]:
        with transaction_scope(self._session_factory) as session:
            stmt = (
                select(RawPricingRow)
                .where(*_raw_filters(provider, regions, services))
                .order_by(RawPricingRow.id)
                .offset(offset)
                .limit(limit)
            )
            return [
                RawPricingRecord(
                    id=row.id,
                    provider=row.provider,
                    service_code=row.service_code,
                    region=row.region,
                    payload=row.payload,
                    collection_id=row.collection_id or "",
                    service_family=row.service_family,
                )
                for row in session.execute(stmt).scalars()
            ]

    def add(self, records: Iterable[dict]) -> list[int]:
        """Insert raw rows (collector side); returns the assigned ids."""
        with transaction_scope(self._session_factory) as session:
            rows = []
            for item in records:
                payload = item["payload"]
                if not isinstance(payload, str):
                    payload = json.dumps(payload)
                rows.append(
                    RawPricingRow(
                        provider=item["provider"],
                        service_code=item["service_code"],
                        service_family=item.get("service_family"),
                        region=item["region"],
                        payload=payload,
                        collection_id=item.get("collection_id", ""),
                    )
                )
            session.add_all(rows)
            session.flush()
            return [row.id for row in rows]


def _to_service_mapping(row: ServiceMappingRow) -> ServiceMapping:
    return ServiceMapping(
        id=row.id,
        provider=row.provider,
        vendor_service_name=row.vendor_service_name,
        vendor_service_code=row.vendor_service_code,
        canonical_service_type=row.canonical_service_type,
        service_category=row.service_category,
        service_family=row.service_family,
    )


def _to_region(row: NormalizedRegionRow) -> NormalizedRegion:
    return NormalizedRegion(
        id=row.id,
        canonical_code=row.canonical_code,
        display_name=row.display_name,
        aws_region=row.aws_region,
        azure_region=row.azure_region,
        country=row.country,
        continent=row.continent,
    )


class SqlServiceMappingStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def find_service_mapping(self, provider: str, service_name: str) -> Optional[ServiceMapping]:
        with transaction_scope(self._session_factory) as session:
            stmt = (
                select(ServiceMappingRow)
                .where(
                    ServiceMappingRow.provider == provider,
                    or_(
                        ServiceMappingRow.vendor_service_name == service_name,
                        ServiceMappingRow.vendor_service_code == service_name,
                    ),
                )
                .order_by(ServiceMappingRow.id)
                .limit(1)
            )
            row = session.execute(stmt).scalars().first()
            return _to_service_mapping(row) if row is not None else None

    def list_service_mappings(self) -> list[ServiceMapping]:
        with transaction_scope(self._session_factory) as session:
            rows = session.execute(select(ServiceMappingRow).order_by(ServiceMappingRow.id)).scalars()
            return [_to_service_mapping(row) for row in rows]


# Region lookups go through the provider's own region column.
REGION_COLUMNS = {
    "aws": NormalizedRegionRow.aws_region,
    "azure": NormalizedRegionRow.azure_region,
}


class SqlRegionStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def find_region(self, provider: str, provider_region: str) -> Optional[NormalizedRegion]:
        column = REGION_COLUMNS.get(provider)
        if column is None:
            raise ValueError(f"unsupported provider: {provider}")
        with transaction_scope(self._session_factory) as session:
            stmt = select(NormalizedRegionRow).where(column == provider_region).limit(1)
            row = session.execute(stmt).scalars().first()
            return _to_region(row) if row is not None else None

    def list_regions(self) -> list[NormalizedRegion]:
        with transaction_scope(self._session_factory) as session:
            rows = session.execute(select(NormalizedRegionRow).order_by(NormalizedRegionRow.id)).scalars()
            return [_to_region(row) for row in rows]


def _to_row(record: NormalizedPricing) -> NormalizedPricingRow:
    return NormalizedPricingRow(
        provider=record.provider,
        provider_service_code=record.provider_service_code,
        provider_sku=record.provider_sku,
        service_category=record.service_category,
        service_family=record.service_family,
        service_type=record.service_type,
        normalized_region=record.normalized_region,
        provider_region=record.provider_region,
        resource_name=record.resource_name,
        resource_description=record.resource_description,
        resource_specs=record.resource_specs.to_dict(),
        price_per_unit=record.price_per_unit,
        unit=record.unit,
        currency=record.currency,
        pricing_model=record.pricing_model,
        pricing_details=record.pricing_details.to_dict(),
        effective_date=record.effective_date,
        minimum_commitment=record.minimum_commitment,
        source_raw_id=record.source_raw_id,
    )


def _to_normalized(row: NormalizedPricingRow) -> NormalizedPricing:
    return NormalizedPricing(
        id=row.id,
        provider=row.provider,
        provider_service_code=row.provider_service_code,
        provider_sku=row.provider_sku,
        service_category=row.service_category,
        service_family=row.service_family,
        service_type=row.service_type,
        normalized_region=row.normalized_region,
        provider_region=row.provider_region or "",
        resource_name=row.resource_name,
        resource_description=row.resource_description,
        resource_specs=ResourceSpecs.from_dict(row.resource_specs),
        price_per_unit=row.price_per_unit,
        unit=row.unit,
        currency=row.currency,
        pricing_model=row.pricing_model,
        pricing_details=PricingDetails.from_dict(row.pricing_details),
        effective_date=row.effective_date,
        minimum_commitment=row.minimum_commitment,
        source_raw_id=row.source_raw_id,
    )


def _pricing_filters(pricing_filter: PricingFilter) -> list:
    clauses = []
    equality = (
        (NormalizedPricingRow.provider, pricing_filter.provider),
        (NormalizedPricingRow.service_category, pricing_filter.service_category),
        (NormalizedPricingRow.service_family, pricing_filter.service_family),
        (NormalizedPricingRow.service_type, pricing_filter.service_type),
        (NormalizedPricingRow.normalized_region, pricing_filter.normalized_region),
        (NormalizedPricingRow.currency, pricing_filter.currency),
    )
    for column, value in equality:
        if value:
            clauses.append(column == value)
    if pricing_filter.pricing_model is not None:
        clauses.append(NormalizedPricingRow.pricing_model == pricing_filter.pricing_model.value)
    if pricing_filter.min_price_per_unit is not None:
        clauses.append(NormalizedPricingRow.price_per_unit >= pricing_filter.min_price_per_unit)
    if pricing_filter.max_price_per_unit is not None:
        clauses.append(NormalizedPricingRow.price_per_unit <= pricing_filter.max_price_per_unit)
    if pricing_filter.vcpu is not None:
        clauses.append(NormalizedPricingRow.resource_specs["vcpu"].as_integer() == pricing_filter.vcpu)
    return clauses


class SqlNormalizedPricingRepository:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def bulk_insert(self, records: Sequence[NormalizedPricing]) -> int:
        """Insert all records in one transaction; nothing is written on failure."""
        if not records:
            return 0
        with transaction_scope(self._session_factory) as session:
            session.add_all([_to_row(record) for record in records])
        logger.info("Bulk inserted %d normalized pricing records", len(records))
        return len(records)

    def query(self, pricing_filter: Optional[PricingFilter] = None) -> list[NormalizedPricing]:
        pricing_filter = pricing_filter or PricingFilter()
        # order_by is restricted to a Literal whitelist by PricingFilter.
        order_column = getattr(NormalizedPricingRow, pricing_filter.order_by)
        ordering = order_column.desc() if pricing_filter.order_direction == "desc" else order_column.asc()
        stmt = (
            select(NormalizedPricingRow)
            .where(*_pricing_filters(pricing_filter))
            .order_by(ordering, NormalizedPricingRow.id.asc())
        )
        if pricing_filter.offset:
            stmt = stmt.offset(pricing_filter.offset)
        if pricing_filter.limit:
            stmt = stmt.limit(pricing_filter.limit)
        with transaction_scope(self._session_factory) as session:
            return [_to_normalized(row) for row in session.execute(stmt).scalars()]

    def count(self, pricing_filter: Optional[PricingFilter] = None) -> int:
        clauses = _pricing_filters(pricing_filter) if pricing_filter is not None else []
        with transaction_scope(self._session_factory) as session:
            stmt = select(func.count(NormalizedPricingRow.id)).where(*clauses)
            return int(session.execute(stmt).scalar_one())

    def clear(self) -> int:
        with transaction_scope(self._session_factory) as session:
            removed = session.execute(delete(NormalizedPricingRow)).rowcount or 0
        logger.info("Cleared %d normalized pricing records", removed)
        return removed

    def delete_orphans(self) -> int:
        """Delete normalized rows whose source raw record no longer exists."""
        source_exists = (
            select(RawPricingRow.id)
            .where(RawPricingRow.id == NormalizedPricingRow.source_raw_id)
            .exists()
        )
        with transaction_scope(self._session_factory) as session:
            result = session.execute(
                delete(NormalizedPricingRow)
                .where(~source_exists)
                .execution_options(synchronize_session=False)
            )
            removed = result.rowcount or 0
        logger.info("Removed %d orphaned normalized pricing records", removed)
        return removed
