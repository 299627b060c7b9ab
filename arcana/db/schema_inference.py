"""
Column type inference for collections created on first write.

Generic collections have no migration: the first payload written to a table
decides its columns. Values map to Postgres types for DDL sent to Supabase and
to SQLAlchemy types for the SQL provider. Identifiers are validated before they
are interpolated into any statement.
"""
import re
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Float, Text
from sqlalchemy.types import TypeEngine

from arcana.db.errors import InvalidIdentifierError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
_ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$")

TEXT = "TEXT"
BIGINT = "BIGINT"
DOUBLE = "DOUBLE PRECISION"
BOOLEAN = "BOOLEAN"
TIMESTAMPTZ = "TIMESTAMPTZ"
JSONB = "JSONB"

_SQLALCHEMY_TYPES = {
    TEXT: Text,
    BIGINT: BigInteger,
    DOUBLE: Float,
    BOOLEAN: Boolean,
    TIMESTAMPTZ: lambda: DateTime(timezone=True),
    JSONB: JSON,
}


def is_safe_identifier(name: Any) -> bool:
    return isinstance(name, str) and bool(_IDENTIFIER_RE.match(name))


def ensure_identifier(name: Any, kind: str = "identifier") -> str:
    if not is_safe_identifier(name):
        raise InvalidIdentifierError(f"Invalid {kind}: {name!r}")
    return name


def is_iso_datetime(value: Any) -> bool:
    if not isinstance(value, str) or not _ISO_DATETIME_RE.match(value):
        return False
    try:
        parse_datetime(value)
    except ValueError:
        return False
    return True


def parse_datetime(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def infer_sql_type(value: Any) -> str:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, int):
        return BIGINT
    if isinstance(value, float):
        return DOUBLE
    if isinstance(value, datetime) or is_iso_datetime(value):
        return TIMESTAMPTZ
    if isinstance(value, (dict, list)):
        return JSONB
    return TEXT


def infer_columns(payload: Mapping[str, Any]) -> Dict[str, str]:
    """Return ``{column: sql_type}`` for every key in ``payload`` except ``id``."""
    columns: Dict[str, str] = {}
    for key, value in payload.items():
        ensure_identifier(key, "column name")
        if key == "id":
            continue
        columns[key] = infer_sql_type(value)
    return columns


def missing_columns(payload: Mapping[str, Any], existing: Iterable[str]) -> Dict[str, str]:
    known = {c.lower() for c in existing}
    return {name: kind for name, kind in infer_columns(payload).items() if name.lower() not in known}


def create_table_sql(table: str, columns: Mapping[str, str]) -> str:
    ensure_identifier(table, "table name")
    parts = ['"id" TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text']
    for name, kind in columns.items():
        ensure_identifier(name, "column name")
        parts.append(f'"{name}" {kind}')
    return f'CREATE TABLE IF NOT EXISTS "{table}" ({", ".join(parts)});'


def add_columns_sql(table: str, columns: Mapping[str, str]) -> str:
    ensure_identifier(table, "table name")
    clauses = []
    for name, kind in columns.items():
        ensure_identifier(name, "column name")
        clauses.append(f'ADD COLUMN IF NOT EXISTS "{name}" {kind}')
    if not clauses:
        return ""
    return f'ALTER TABLE "{table}" {", ".join(clauses)};'


def sqlalchemy_type(sql_type: str) -> TypeEngine:
    factory = _SQLALCHEMY_TYPES.get(sql_type, Text)
    return factory()
