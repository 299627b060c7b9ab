"""
Provider contract for the database facade.

Every backend stores records as flat dicts keyed by a string ``id``. Reads of a
table that does not exist behave like reads of an empty table; writes create
what they need.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence


class DatabaseProvider(ABC):
    name: str = "abstract"

    @abstractmethod
    def get_items_by_key_value(self, key: str, value: Any, table: str) -> List[Dict[str, Any]]:
        """Return every record whose ``key`` column equals ``value``."""

    def read_by(self, key: str, value: Any, table: str) -> Optional[Dict[str, Any]]:
        """Return the first record matching ``key == value`` or None."""
        items = self.get_items_by_key_value(key, value, table)
        return items[0] if items else None

    def get_item_key(self, key: str, value: Any, table: str) -> Optional[str]:
        record = self.read_by(key, value, table)
        return str(record["id"]) if record else None

    @abstractmethod
    def read(self, record_id: str, table: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def read_all(self, table: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def create(self, data: Dict[str, Any], table: str) -> Dict[str, Any]:
        """Insert ``data`` and return the stored record including its ``id``."""

    @abstractmethod
    def update(self, record_id: str, data: Dict[str, Any], table: str) -> Optional[Dict[str, Any]]:
        """Apply a partial update; return the updated record or None if absent."""

    @abstractmethod
    def delete(self, record_id: str, table: str) -> bool:
        ...

    @abstractmethod
    def delete_all(self, table: str) -> bool:
        ...

    @abstractmethod
    def upload(self, content: bytes, path: str, content_type: Optional[str] = None) -> str:
        """Store file bytes and return a URL the browser can fetch."""

    @abstractmethod
    def execute_query(self, query: str, params: Optional[Sequence[Any]] = None) -> Any:
        ...

    @abstractmethod
    def ping(self) -> None:
        """Raise if the backend is unreachable."""


def jsonable_record(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``data`` with datetimes rendered as ISO strings."""
    out: Dict[str, Any] = {}
    for key, value in data.items():
        out[key] = value.isoformat() if isinstance(value, datetime) else value
    return out
