"""Read-through caches over the service and region mapping tables.

A missing mapping is a normal outcome (the vendor service or region has no
canonical equivalent yet) and is returned as None. Only hits are cached, so a
mapping added later becomes visible without a restart.

The caches are plain dicts without locking. Concurrent first lookups for the
same key may both reach the store; they compute the same value, so the race
is benign.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from pricing_atlas.normalization.schema import NormalizedRegion, ServiceMapping

logger = logging.getLogger(__name__)


class ServiceMappingStore(Protocol):
    def find_service_mapping(self, provider: str, service_name: str) -> Optional[ServiceMapping]:
        """Match `service_name` against the vendor service name or code."""
        ...

    def list_service_mappings(self) -> list[ServiceMapping]: ...


class RegionStore(Protocol):
    def find_region(self, provider: str, provider_region: str) -> Optional[NormalizedRegion]: ...

    def list_regions(self) -> list[NormalizedRegion]: ...


def _cache_key(provider: str, name: str) -> str:
    return f"{provider}:{name}"


class ServiceMappingRepository:
    def __init__(self, store: ServiceMappingStore) -> None:
        self._store = store
        self._cache: dict[str, ServiceMapping] = {}

    def get_service_mapping(self, provider: str, service_name: str) -> Optional[ServiceMapping]:
        key = _cache_key(provider, service_name)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Service mapping cache hit provider=%s service=%s", provider, service_name)
            return cached

        mapping = self._store.find_service_mapping(provider, service_name)
        if mapping is None:
            logger.debug("Service mapping not found provider=%s service=%s", provider, service_name)
            return None
        self._cache[key] = mapping
        return mapping

    def warm(self) -> int:
        """Load every mapping into the cache; returns the number of rows loaded."""
        mappings = self._store.list_service_mappings()
        for mapping in mappings:
            self._cache[_cache_key(mapping.provider, mapping.vendor_service_name)] = mapping
            if mapping.vendor_service_code:
                self._cache[_cache_key(mapping.provider, mapping.vendor_service_code)] = mapping
        logger.info("Warmed service mapping cache with %d mappings", len(mappings))
        return len(mappings)

    def clear_cache(self) -> None:
        self._cache.clear()


class RegionRepository:
    def __init__(self, store: RegionStore) -> None:
        self._store = store
        self._cache: dict[str, NormalizedRegion] = {}

    def get_region(self, provider: str, provider_region: str) -> Optional[NormalizedRegion]:
        key = _cache_key(provider, provider_region)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Region mapping cache hit provider=%s region=%s", provider, provider_region)
            return cached

        region = self._store.find_region(provider, provider_region)
        if region is None:
            logger.debug("Normalized region not found provider=%s region=%s", provider, provider_region)
            return None
        self._cache[key] = region
        return region

    def warm(self) -> int:
        regions = self._store.list_regions()
        for region in regions:
            if region.aws_region:
                self._cache[_cache_key("aws", region.aws_region)] = region
            if region.azure_region:
                self._cache[_cache_key("azure", region.azure_region)] = region
        logger.info("Warmed region cache with %d regions", len(regions))
        return len(regions)

    def clear_cache(self) -> None:
        self._cache.clear()
