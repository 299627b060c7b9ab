"""
Supabase provider (supabase-py over PostgREST).

Writes that hit a missing table or column repair the schema on the fly: the
payload's inferred columns are sent as DDL through the ``exec_sql`` RPC
function, PostgREST is asked to reload its schema cache, and the write is
retried once. ``exec_sql(query text)`` must exist in the project; it is the
same function ``execute_query`` relies on.
"""
import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Set

from postgrest.exceptions import APIError
from supabase import Client, create_client

from arcana.db.errors import (
    COLUMN_MISSING_CODES,
    TABLE_MISSING_CODES,
    DatabaseError,
    UnsupportedOperationError,
    classify_error,
)
from arcana.db.providers.base import DatabaseProvider, jsonable_record
from arcana.db.schema_inference import (
    add_columns_sql,
    create_table_sql,
    ensure_identifier,
    infer_columns,
    missing_columns,
)

logger = logging.getLogger(__name__)

RELOAD_SCHEMA_SQL = "NOTIFY pgrst, 'reload schema';"


def _create_default_client() -> Client:
    url = os.getenv("SUPABASE_URL", "")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY", "")
    if not url or not key:
        raise DatabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_ANON_KEY) must be set")
    return create_client(url, key)


class SupabaseProvider(DatabaseProvider):
    name = "supabase"

    def __init__(self, client: Optional[Client] = None, bucket: Optional[str] = None, auto_schema: Optional[bool] = None):
        self.client = client or _create_default_client()
        self.bucket = bucket or os.getenv("SUPABASE_BUCKET", "uploads")
        if auto_schema is None:
            auto_schema = os.getenv("SUPABASE_AUTO_SCHEMA", "true").lower() == "true"
        self.auto_schema = auto_schema
        self._known_columns: Dict[str, Set[str]] = {}

    # ------------------------------------------------------------------
    # Error helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _error_code(exc: APIError) -> str:
        return str(getattr(exc, "code", "") or "")

    def _raise(self, exc: APIError, table: Optional[str]) -> None:
        raise classify_error(self._error_code(exc), getattr(exc, "message", None) or str(exc), table) from exc

    def _is_missing_table(self, exc: APIError) -> bool:
        return self._error_code(exc) in TABLE_MISSING_CODES

    def _remember(self, table: str, rows: Sequence[Dict[str, Any]]) -> None:
        cols = self._known_columns.setdefault(table, set())
        for row in rows:
            cols.update(row.keys())

    # ------------------------------------------------------------------
    # Dynamic schema
    # ------------------------------------------------------------------
    def _exec_sql(self, statement: str) -> Any:
        return self.client.rpc("exec_sql", {"query": statement}).execute()

    def _repair_schema(self, exc: APIError, table: str, payload: Dict[str, Any]) -> bool:
        if not self.auto_schema:
            return False
        code = self._error_code(exc)
        if code in TABLE_MISSING_CODES:
            columns = infer_columns(payload)
            statement = create_table_sql(table, columns)
            logger.info("Creating Supabase table %s with columns %s", table, sorted(columns))
        elif code in COLUMN_MISSING_CODES:
            known = self._known_columns.get(table)
            columns = missing_columns(payload, known) if known else infer_columns(payload)
            if not columns:
                columns = infer_columns(payload)
            statement = add_columns_sql(table, columns)
            logger.info("Adding columns %s to Supabase table %s", sorted(columns), table)
        else:
            return False
        if not statement:
            return False
        try:
            self._exec_sql(statement + " " + RELOAD_SCHEMA_SQL)
        except APIError as ddl_exc:
            logger.error("Schema repair failed for %s: %s", table, ddl_exc)
            return False
        self._known_columns.setdefault(table, {"id"}).update(columns)
        return True

    def _write_with_repair(self, table: str, payload: Dict[str, Any], action):
        try:
            return action()
        except APIError as exc:
            if not self._repair_schema(exc, table, payload):
                self._raise(exc, table)
        try:
            return action()
        except APIError as exc:
            self._raise(exc, table)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    def get_items_by_key_value(self, key: str, value: Any, table: str) -> List[Dict[str, Any]]:
        ensure_identifier(table, "table name")
        ensure_identifier(key, "column name")
        try:
            res = self.client.table(table).select("*").eq(key, value).execute()
        except APIError as exc:
            if self._is_missing_table(exc) or self._error_code(exc) in COLUMN_MISSING_CODES:
                return []
            self._raise(exc, table)
        rows = res.data or []
        self._remember(table, rows)
        return rows

    def read_by(self, key: str, value: Any, table: str) -> Optional[Dict[str, Any]]:
        ensure_identifier(table, "table name")
        ensure_identifier(key, "column name")
        try:
            res = self.client.table(table).select("*").eq(key, value).limit(1).maybe_single().execute()
        except APIError as exc:
            if self._is_missing_table(exc) or self._error_code(exc) in COLUMN_MISSING_CODES:
                return None
            self._raise(exc, table)
        # postgrest returns None instead of an empty response when nothing matched
        return res.data if res is not None else None

    def read(self, record_id: str, table: str) -> Optional[Dict[str, Any]]:
        return self.read_by("id", record_id, table)

    def read_all(self, table: str) -> List[Dict[str, Any]]:
        ensure_identifier(table, "table name")
        try:
            res = self.client.table(table).select("*").execute()
        except APIError as exc:
            if self._is_missing_table(exc):
                return []
            self._raise(exc, table)
        rows = res.data or []
        self._remember(table, rows)
        return rows

    def create(self, data: Dict[str, Any], table: str) -> Dict[str, Any]:
        ensure_identifier(table, "table name")
        payload = jsonable_record(data)
        if not payload.get("id"):
            payload.pop("id", None)
        res = self._write_with_repair(
            table, payload, lambda: self.client.table(table).insert(payload).execute()
        )
        rows = res.data or []
        if not rows:
            raise DatabaseError(f"Insert into {table} returned no rows", table=table)
        self._remember(table, rows)
        logger.debug("Created record %s in %s", rows[0].get("id"), table)
        return rows[0]

    def update(self, record_id: str, data: Dict[str, Any], table: str) -> Optional[Dict[str, Any]]:
        ensure_identifier(table, "table name")
        payload = {k: v for k, v in jsonable_record(data).items() if k != "id"}
        if not payload:
            return self.read(record_id, table)
        res = self._write_with_repair(
            table, payload, lambda: self.client.table(table).update(payload).eq("id", record_id).execute()
        )
        rows = res.data or []
        return rows[0] if rows else None

    def delete(self, record_id: str, table: str) -> bool:
        ensure_identifier(table, "table name")
        try:
            res = self.client.table(table).delete().eq("id", record_id).execute()
        except APIError as exc:
            if self._is_missing_table(exc):
                return False
            self._raise(exc, table)
        return bool(res.data)

    def delete_all(self, table: str) -> bool:
        ensure_identifier(table, "table name")
        try:
            # PostgREST refuses unfiltered deletes
            self.client.table(table).delete().neq("id", "").execute()
        except APIError as exc:
            if self._is_missing_table(exc):
                return True
            self._raise(exc, table)
        return True

    def upload(self, content: bytes, path: str, content_type: Optional[str] = None) -> str:
        storage = self.client.storage.from_(self.bucket)
        if content_type:
            storage.upload(path, content, {"content-type": content_type})
        else:
            storage.upload(path, content)
        return storage.get_public_url(path)

    def execute_query(self, query: str, params: Optional[Sequence[Any]] = None) -> Any:
        if params:
            raise UnsupportedOperationError("exec_sql does not accept bound parameters")
        try:
            res = self.client.rpc("exec_sql", {"query": query}).execute()
        except APIError as exc:
            self._raise(exc, None)
        return res.data

    def ping(self) -> None:
        try:
            self.client.table("users").select("id").limit(1).execute()
        except APIError as exc:
            if not self._is_missing_table(exc):
                self._raise(exc, "users")
