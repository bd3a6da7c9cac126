"""ORM tables for raw pricing, mapping reference data and normalized output."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from pricing_atlas.storage.engine import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RawPricingRow(Base):
    """Raw vendor pricing item written by a collector; read-only to the ETL."""

    __tablename__ = "raw_pricing"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(20), nullable=False)
    service_code = Column(String(100), nullable=False)
    service_family = Column(String(100), nullable=True)
    region = Column(String(50), nullable=False)
    payload = Column(Text, nullable=False)
    collection_id = Column(String(64), nullable=False, default="")
    collected_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("idx_raw_pricing_provider_id", "provider", "id"),
        Index("idx_raw_pricing_provider_region", "provider", "region"),
        Index("idx_raw_pricing_provider_service", "provider", "service_code"),
    )


class ServiceMappingRow(Base):
    __tablename__ = "service_mappings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(20), nullable=False)
    vendor_service_name = Column(String(100), nullable=False)
    vendor_service_code = Column(String(100), nullable=True)
    canonical_service_type = Column(String(100), nullable=False)
    service_category = Column(String(100), nullable=False)
    service_family = Column(String(100), nullable=False)

    __table_args__ = (
        UniqueConstraint("provider", "vendor_service_name", name="uq_service_mapping_name"),
    )


class NormalizedRegionRow(Base):
    __tablename__ = "normalized_regions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    canonical_code = Column(String(50), nullable=False, unique=True)
    display_name = Column(String(100), nullable=False)
    aws_region = Column(String(50), nullable=True, index=True)
    azure_region = Column(String(50), nullable=True, index=True)
    country = Column(String(100), nullable=True)
    continent = Column(String(50), nullable=True)


class NormalizedPricingRow(Base):
    """Canonical, provider-agnostic price line."""

    __tablename__ = "normalized_pricing"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(20), nullable=False)
    provider_service_code = Column(String(100), nullable=False)
    provider_sku = Column(String(200), nullable=True)
    service_category = Column(String(100), nullable=False)
    service_family = Column(String(100), nullable=False)
    service_type = Column(String(100), nullable=False)
    normalized_region = Column(String(50), nullable=False)
    provider_region = Column(String(50), nullable=False, default="")
    resource_name = Column(String(200), nullable=False)
    resource_description = Column(Text, nullable=True)
    resource_specs = Column(JSON, nullable=False, default=dict)
    price_per_unit = Column(Float, nullable=False)
    unit = Column(String(50), nullable=False)
    currency = Column(String(3), nullable=False)
    pricing_model = Column(String(20), nullable=False)
    pricing_details = Column(JSON, nullable=False, default=dict)
    effective_date = Column(DateTime(timezone=True), nullable=True)
    minimum_commitment = Column(Integer, nullable=False, default=1)
    source_raw_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("idx_normalized_provider_service", "provider", "service_type"),
        Index("idx_normalized_region_model", "normalized_region", "pricing_model"),
        Index("idx_normalized_price", "price_per_unit"),
    )
