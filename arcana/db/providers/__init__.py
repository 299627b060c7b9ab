"""
Database providers behind the facade.

Hosted backends (supabase, firebase) are imported by the facade only when
selected so their client libraries are not loaded for SQL-only deployments.
"""

from .base import DatabaseProvider, jsonable_record
from .sql_provider import SqlProvider

__all__ = [
    "DatabaseProvider",
    "jsonable_record",
    "SqlProvider",
]
