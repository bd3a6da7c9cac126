"""SQLAlchemy-backed storage for raw and normalized pricing."""

from pricing_atlas.storage.engine import (
    Base,
    StoragePersistenceError,
    create_all_tables,
    create_database_engine,
    create_session_factory,
    transaction_scope,
)
from pricing_atlas.storage.repositories import (
    SqlNormalizedPricingRepository,
    SqlRawPricingSource,
    SqlRegionStore,
    SqlServiceMappingStore,
)

__all__ = [
    "Base",
    "SqlNormalizedPricingRepository",
    "SqlRawPricingSource",
    "SqlRegionStore",
    "SqlServiceMappingStore",
    "StoragePersistenceError",
    "create_all_tables",
    "create_database_engine",
    "create_session_factory",
    "transaction_scope",
]
