"""
SQLAlchemy-backed provider.

Works against any SQLAlchemy engine (Postgres in deployments, SQLite locally and
under pytest). Tables are reflected on first use. Canonical tables are created
from the ORM metadata; any other collection is created from the first payload
written to it, and unknown payload keys become new nullable columns through
Alembic's ``Operations.add_column``.
"""
import json
import logging
import os
import threading
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import JSON, Boolean, Column, DateTime, MetaData, String, Table, inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from arcana.db.errors import DuplicateKeyError
from arcana.db.models import Base, new_id
from arcana.db.providers.base import DatabaseProvider
from arcana.db.schema_inference import (
    ensure_identifier,
    infer_columns,
    missing_columns,
    parse_datetime,
    sqlalchemy_type,
)

logger = logging.getLogger(__name__)


def _serialize_value(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()
    return value


class SqlProvider(DatabaseProvider):
    name = "sql"

    def __init__(self, engine: Optional[Engine] = None, upload_dir: Optional[str] = None, base_url: str = "/uploads"):
        if engine is None:
            from arcana.db.database import engine as default_engine
            engine = default_engine
        self.engine = engine
        self.upload_dir = Path(upload_dir or os.getenv("UPLOAD_DIR", "uploads"))
        self.base_url = base_url.rstrip("/")
        self._metadata = MetaData()
        self._tables: Dict[str, Table] = {}
        self._schema_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Schema handling
    # ------------------------------------------------------------------
    def _reflect(self, name: str) -> Table:
        existing = self._metadata.tables.get(name)
        if existing is not None:
            self._metadata.remove(existing)
        table = Table(name, self._metadata, autoload_with=self.engine)
        self._tables[name] = table
        return table

    def _get_table(self, name: str, create_from: Optional[Mapping[str, Any]] = None) -> Optional[Table]:
        ensure_identifier(name, "table name")
        cached = self._tables.get(name)
        if cached is not None:
            return cached
        if inspect(self.engine).has_table(name):
            return self._reflect(name)
        if create_from is None:
            return None
        with self._schema_lock:
            if not inspect(self.engine).has_table(name):
                self._create_table(name, create_from)
            return self._reflect(name)

    def _create_table(self, name: str, payload: Mapping[str, Any]) -> None:
        model_table = Base.metadata.tables.get(name)
        if model_table is not None:
            model_table.create(self.engine, checkfirst=True)
            logger.info("Created table %s from model metadata", name)
            return
        columns = [Column("id", String(36), primary_key=True)]
        for column_name, sql_type in infer_columns(payload).items():
            columns.append(Column(column_name, sqlalchemy_type(sql_type), nullable=True))
        Table(name, MetaData(), *columns).create(self.engine, checkfirst=True)
        logger.info("Created table %s with inferred columns %s", name, [c.name for c in columns])

    def _ensure_columns(self, table: Table, payload: Mapping[str, Any]) -> Table:
        missing = missing_columns(payload, table.columns.keys())
        if not missing:
            return table
        with self._schema_lock:
            current = {c["name"] for c in inspect(self.engine).get_columns(table.name)}
            missing = missing_columns(payload, current)
            if missing:
                with self.engine.begin() as conn:
                    ops = Operations(MigrationContext.configure(conn))
                    for column_name, sql_type in missing.items():
                        ops.add_column(table.name, Column(column_name, sqlalchemy_type(sql_type), nullable=True))
                logger.info("Added columns %s to %s", sorted(missing), table.name)
            return self._reflect(table.name)

    # ------------------------------------------------------------------
    # Value conversion
    # ------------------------------------------------------------------
    def _to_db(self, table: Table, data: Mapping[str, Any]) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for key, value in data.items():
            column = table.columns.get(key)
            if column is None:
                continue
            if isinstance(column.type, DateTime):
                if isinstance(value, str) and value:
                    value = parse_datetime(value)
                if isinstance(value, datetime) and value.tzinfo is not None:
                    value = value.astimezone(UTC)
            elif isinstance(value, (dict, list)) and not isinstance(column.type, JSON):
                value = json.dumps(value)
            values[key] = value
        return values

    def _apply_model_defaults(self, table_name: str, values: Dict[str, Any]) -> None:
        model_table = Base.metadata.tables.get(table_name)
        if model_table is None:
            return
        for column in model_table.columns:
            if column.name in values or column.default is None:
                continue
            default = column.default
            values[column.name] = default.arg(None) if default.is_callable else default.arg

    def _coerce_lookup(self, column: Column, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if isinstance(column.type, Boolean):
            return value.strip().lower() in ("true", "1", "yes")
        if isinstance(column.type, DateTime):
            try:
                return parse_datetime(value)
            except ValueError:
                return value
        try:
            python_type = column.type.python_type
        except NotImplementedError:
            return value
        if python_type in (int, float):
            try:
                return python_type(value)
            except ValueError:
                return value
        return value

    @staticmethod
    def _row_to_record(row) -> Dict[str, Any]:
        return {key: _serialize_value(value) for key, value in row._mapping.items()}

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    def get_items_by_key_value(self, key: str, value: Any, table: str) -> List[Dict[str, Any]]:
        ensure_identifier(key, "column name")
        tbl = self._get_table(table)
        if tbl is None or key not in tbl.columns:
            return []
        column = tbl.columns[key]
        stmt = select(tbl).where(column == self._coerce_lookup(column, value))
        with self.engine.connect() as conn:
            return [self._row_to_record(row) for row in conn.execute(stmt)]

    def read(self, record_id: str, table: str) -> Optional[Dict[str, Any]]:
        tbl = self._get_table(table)
        if tbl is None:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(select(tbl).where(tbl.c.id == str(record_id))).first()
        return self._row_to_record(row) if row is not None else None

    def read_all(self, table: str) -> List[Dict[str, Any]]:
        tbl = self._get_table(table)
        if tbl is None:
            return []
        with self.engine.connect() as conn:
            return [self._row_to_record(row) for row in conn.execute(select(tbl))]

    def create(self, data: Dict[str, Any], table: str) -> Dict[str, Any]:
        payload = dict(data)
        payload["id"] = str(payload.get("id") or new_id())
        tbl = self._get_table(table, create_from=payload)
        tbl = self._ensure_columns(tbl, payload)
        values = self._to_db(tbl, payload)
        self._apply_model_defaults(table, values)
        try:
            with self.engine.begin() as conn:
                conn.execute(tbl.insert().values(**values))
        except IntegrityError as exc:
            raise DuplicateKeyError(f"Duplicate key violation: {exc.orig}", table=table, code="23505") from exc
        return self.read(payload["id"], table)

    def update(self, record_id: str, data: Dict[str, Any], table: str) -> Optional[Dict[str, Any]]:
        tbl = self._get_table(table)
        if tbl is None or self.read(record_id, table) is None:
            return None
        payload = {k: v for k, v in data.items() if k != "id"}
        if payload:
            tbl = self._ensure_columns(tbl, payload)
            values = self._to_db(tbl, payload)
            try:
                with self.engine.begin() as conn:
                    conn.execute(tbl.update().where(tbl.c.id == str(record_id)).values(**values))
            except IntegrityError as exc:
                raise DuplicateKeyError(f"Duplicate key violation: {exc.orig}", table=table, code="23505") from exc
        return self.read(record_id, table)

    def delete(self, record_id: str, table: str) -> bool:
        tbl = self._get_table(table)
        if tbl is None:
            return False
        with self.engine.begin() as conn:
            result = conn.execute(tbl.delete().where(tbl.c.id == str(record_id)))
        return result.rowcount > 0

    def delete_all(self, table: str) -> bool:
        tbl = self._get_table(table)
        if tbl is None:
            return True
        with self.engine.begin() as conn:
            conn.execute(tbl.delete())
        return True

    def upload(self, content: bytes, path: str, content_type: Optional[str] = None) -> str:
        root = self.upload_dir.resolve()
        target = (root / path).resolve()
        if root not in target.parents:
            raise ValueError(f"Upload path escapes the upload directory: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        return f"{self.base_url}/{target.relative_to(root).as_posix()}"

    def execute_query(self, query: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        with self.engine.begin() as conn:
            result = conn.execute(text(query), dict(params or {}))
            if result.returns_rows:
                return [self._row_to_record(row) for row in result]
            return result.rowcount

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def reset_schema_cache(self) -> None:
        self._tables.clear()
        self._metadata = MetaData()
