"""
Database engine and provider facade.

Builds the SQLAlchemy engine from environment configuration with sensible
test fallbacks (SQLite in-memory) and exposes ``DatabaseService``, the single
entry point route handlers use for persistence. The active backend is chosen by
the ``DATABASE_PROVIDER`` configuration string.
"""
import logging
import os
import sys
from datetime import datetime, UTC
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from arcana.db.providers import DatabaseProvider, SqlProvider

logger = logging.getLogger(__name__)


# Database connection URL
# Generate dynamically from individual components if DATABASE_URL is not provided
def _get_database_url() -> str:
    # If DATABASE_URL is explicitly set, use it
    if os.getenv("DATABASE_URL"):
        return os.getenv("DATABASE_URL")

    components = {
        "POSTGRES_USER": os.getenv("POSTGRES_USER"),
        "POSTGRES_PASSWORD": os.getenv("POSTGRES_PASSWORD"),
        "POSTGRES_HOST": os.getenv("POSTGRES_HOST"),
        "POSTGRES_PORT": os.getenv("POSTGRES_PORT"),
        "POSTGRES_DB": os.getenv("POSTGRES_DB"),
    }
    if not any(components.values()):
        # Nothing configured: local file database for development
        return "sqlite:///./arcana.db"

    missing = [name for name, value in components.items() if not value]
    if missing:
        raise ValueError(f"Missing required database environment variables: {', '.join(missing)}")

    return (
        f"postgresql://{components['POSTGRES_USER']}:{components['POSTGRES_PASSWORD']}"
        f"@{components['POSTGRES_HOST']}:{components['POSTGRES_PORT']}/{components['POSTGRES_DB']}"
    )


def _is_pytest_runtime() -> bool:
    """Best-effort detection that we're executing under pytest.

    ``PYTEST_CURRENT_TEST`` is only set while a test runs, so module import
    during collection also checks whether pytest is already in ``sys.modules``.
    ``PYTEST_RUNNING=1`` forces the test behaviour explicitly.
    """
    if os.getenv("PYTEST_RUNNING") == "1":
        return True
    if "PYTEST_CURRENT_TEST" in os.environ:
        return True
    return "pytest" in sys.modules


def _engine_kwargs(url: str) -> Dict[str, Any]:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url:
        # StaticPool so the schema persists across connections
        kwargs["poolclass"] = StaticPool
    return kwargs


# Test override strategy:
# 1. ARCANA_TEST_DB wins when set.
# 2. Under pytest, force in-memory sqlite.
# 3. Otherwise use the configured URL.
explicit_test_db = os.getenv("ARCANA_TEST_DB")
if explicit_test_db:
    DATABASE_URL = explicit_test_db
elif _is_pytest_runtime():
    DATABASE_URL = "sqlite+pysqlite:///:memory:"
else:
    DATABASE_URL = _get_database_url()

engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))


def _sql_factory() -> DatabaseProvider:
    return SqlProvider(engine)


def _supabase_factory() -> DatabaseProvider:
    from arcana.db.providers.supabase_provider import SupabaseProvider
    return SupabaseProvider()


def _firebase_factory() -> DatabaseProvider:
    from arcana.db.providers.firebase_provider import FirebaseProvider
    return FirebaseProvider()


PROVIDER_FACTORIES: Dict[str, Callable[[], DatabaseProvider]] = {
    "sql": _sql_factory,
    "supabase": _supabase_factory,
    "firebase": _firebase_factory,
}


def index_by_id(records: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Return records keyed by id (the object-shaped view some callers expect)."""
    return {str(r["id"]): r for r in records if r.get("id") is not None}


class DatabaseService:
    """Provider-agnostic persistence facade.

    Every operation delegates to the active provider; failures are logged with
    the operation and provider name and then re-raised unchanged.
    """

    def __init__(self, provider_name: Optional[str] = None, providers: Optional[Dict[str, DatabaseProvider]] = None):
        name = (provider_name or os.getenv("DATABASE_PROVIDER", "sql")).strip().lower()
        self._validate(name)
        self._instances: Dict[str, DatabaseProvider] = dict(providers or {})
        self.provider_name = name

    @staticmethod
    def _validate(name: str) -> None:
        if name not in PROVIDER_FACTORIES:
            raise ValueError(f"Invalid provider: {name}. Valid options: {', '.join(sorted(PROVIDER_FACTORIES))}")

    @property
    def provider(self) -> DatabaseProvider:
        return self.get_provider()

    def get_provider(self, name: Optional[str] = None) -> DatabaseProvider:
        key = (name or self.provider_name).strip().lower()
        self._validate(key)
        instance = self._instances.get(key)
        if instance is None:
            instance = PROVIDER_FACTORIES[key]()
            self._instances[key] = instance
            logger.info("Initialized %s database provider", key)
        return instance

    def switch_provider(self, name: str) -> None:
        key = name.strip().lower()
        self._validate(key)
        logger.info("Switching database provider from %s to %s", self.provider_name, key)
        self.provider_name = key

    def _call(self, operation: str, *args):
        try:
            return getattr(self.provider, operation)(*args)
        except Exception as e:
            logger.error("Error in %s (%s): %s", operation, self.provider_name, e)
            raise

    # Delegated operations
    def get_items_by_key_value(self, key: str, value: Any, table: str) -> List[Dict[str, Any]]:
        return self._call("get_items_by_key_value", key, value, table)

    def read_by(self, key: str, value: Any, table: str) -> Optional[Dict[str, Any]]:
        return self._call("read_by", key, value, table)

    def get_item_key(self, key: str, value: Any, table: str) -> Optional[str]:
        return self._call("get_item_key", key, value, table)

    def read(self, record_id: str, table: str) -> Optional[Dict[str, Any]]:
        return self._call("read", record_id, table)

    def read_all(self, table: str) -> List[Dict[str, Any]]:
        return self._call("read_all", table)

    def create(self, data: Dict[str, Any], table: str) -> Dict[str, Any]:
        return self._call("create", data, table)

    def update(self, record_id: str, data: Dict[str, Any], table: str) -> Optional[Dict[str, Any]]:
        return self._call("update", record_id, data, table)

    def delete(self, record_id: str, table: str) -> bool:
        return self._call("delete", record_id, table)

    def delete_all(self, table: str) -> bool:
        return self._call("delete_all", table)

    def upload(self, content: bytes, path: str, content_type: Optional[str] = None) -> str:
        return self._call("upload", content, path, content_type)

    def execute_query(self, query: str, params: Any = None) -> Any:
        return self._call("execute_query", query, params)

    def health_check(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "provider": self.provider_name,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        try:
            self.provider.ping()
        except Exception as e:
            logger.warning("Database health check failed for %s: %s", self.provider_name, e)
            result.update(status="unhealthy", error=str(e))
        else:
            result["status"] = "healthy"
        return result

    def migrate_data(self, source: str, target: str, tables: Iterable[str], **options) -> Dict[str, Any]:
        from arcana.db.migration import migrate_data
        return migrate_data(self, source, target, tables, **options)


# Global service instance
_database_service: Optional[DatabaseService] = None


def get_database_service() -> DatabaseService:
    """Get singleton database facade instance."""
    global _database_service
    if _database_service is None:
        _database_service = DatabaseService()
    return _database_service
