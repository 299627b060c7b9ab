"""
Provider-agnostic database errors.

Backends translate their native failures (Postgres SQLSTATE codes surfaced by
PostgREST, SQLAlchemy integrity errors, Firebase limitations) into these types
so route handlers can react without knowing which provider is active.
"""
from typing import Optional


class DatabaseError(Exception):
    """Base class for facade and provider failures."""

    def __init__(self, message: str, *, table: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.table = table
        self.code = code


class TableNotFoundError(DatabaseError):
    pass


class ColumnNotFoundError(DatabaseError):
    pass


class DuplicateKeyError(DatabaseError):
    pass


class PermissionDeniedError(DatabaseError):
    pass


class InvalidIdentifierError(DatabaseError):
    pass


class UnsupportedOperationError(DatabaseError):
    pass


TABLE_MISSING_CODES = {"42P01", "PGRST205"}
COLUMN_MISSING_CODES = {"42703", "PGRST204"}
DUPLICATE_CODES = {"23505"}


def classify_error(code: Optional[str], message: str, table: Optional[str] = None) -> DatabaseError:
    """Map a backend error code/message to the matching DatabaseError subclass."""
    code = (code or "").strip() or None
    text = message or "Database error"
    if code in TABLE_MISSING_CODES:
        return TableNotFoundError(f'Table "{table}" does not exist: {text}', table=table, code=code)
    if code in COLUMN_MISSING_CODES:
        return ColumnNotFoundError(f"Column doesn't exist: {text}", table=table, code=code)
    if code in DUPLICATE_CODES:
        return DuplicateKeyError(f"Duplicate key violation: {text}", table=table, code=code)
    if "row-level security" in text.lower():
        return PermissionDeniedError(
            f'Permission denied due to RLS policy for table "{table}"', table=table, code=code
        )
    return DatabaseError(text, table=table, code=code)
