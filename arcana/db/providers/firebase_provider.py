"""
Firebase provider (firebase-admin Realtime Database and Cloud Storage).

Each table is a child of the database root; records live under their push key,
which is surfaced to callers as ``id``. Key/value lookups rely on
``order_by_child`` so the matching ``.indexOn`` rules should be declared in the
project for large tables.
"""
import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import firebase_admin
from firebase_admin import credentials
from firebase_admin import db as rtdb
from firebase_admin import storage

from arcana.db.errors import DatabaseError, UnsupportedOperationError
from arcana.db.providers.base import DatabaseProvider, jsonable_record
from arcana.db.schema_inference import ensure_identifier

logger = logging.getLogger(__name__)

APP_NAME = "arcana"


def _load_credentials():
    raw = os.getenv("FIREBASE_CREDENTIALS", "").strip()
    if not raw:
        return credentials.ApplicationDefault()
    if raw.startswith("{"):
        return credentials.Certificate(json.loads(raw))
    return credentials.Certificate(raw)


def _default_app() -> firebase_admin.App:
    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        pass
    database_url = os.getenv("FIREBASE_DATABASE_URL", "")
    if not database_url:
        raise DatabaseError("FIREBASE_DATABASE_URL must be set for the firebase provider")
    options = {"databaseURL": database_url}
    bucket = os.getenv("FIREBASE_STORAGE_BUCKET")
    if bucket:
        options["storageBucket"] = bucket
    return firebase_admin.initialize_app(_load_credentials(), options, name=APP_NAME)


def _snapshot_to_records(snapshot: Any) -> List[Dict[str, Any]]:
    if not snapshot:
        return []
    if isinstance(snapshot, list):
        # Realtime DB returns arrays for integer-like keys
        return [dict(value, id=str(idx)) for idx, value in enumerate(snapshot) if isinstance(value, dict)]
    return [dict(value, id=key) for key, value in snapshot.items() if isinstance(value, dict)]


class FirebaseProvider(DatabaseProvider):
    name = "firebase"

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self.app = app or _default_app()

    def _ref(self, table: str, *children: str):
        ensure_identifier(table, "table name")
        path = "/".join([table, *children])
        return rtdb.reference(f"/{path}", app=self.app)

    def get_items_by_key_value(self, key: str, value: Any, table: str) -> List[Dict[str, Any]]:
        ensure_identifier(key, "column name")
        snapshot = self._ref(table).order_by_child(key).equal_to(value).get()
        return _snapshot_to_records(snapshot)

    def read(self, record_id: str, table: str) -> Optional[Dict[str, Any]]:
        value = self._ref(table, str(record_id)).get()
        if not isinstance(value, dict):
            return None
        return dict(value, id=str(record_id))

    def read_all(self, table: str) -> List[Dict[str, Any]]:
        return _snapshot_to_records(self._ref(table).get())

    def create(self, data: Dict[str, Any], table: str) -> Dict[str, Any]:
        payload = jsonable_record(data)
        record_id = payload.pop("id", None)
        if record_id:
            self._ref(table, str(record_id)).set(payload)
            key = str(record_id)
        else:
            key = self._ref(table).push(payload).key
        logger.debug("Created record %s in %s", key, table)
        return dict(payload, id=key)

    def update(self, record_id: str, data: Dict[str, Any], table: str) -> Optional[Dict[str, Any]]:
        ref = self._ref(table, str(record_id))
        if ref.get() is None:
            return None
        payload = {k: v for k, v in jsonable_record(data).items() if k != "id"}
        if payload:
            ref.update(payload)
        return self.read(record_id, table)

    def delete(self, record_id: str, table: str) -> bool:
        ref = self._ref(table, str(record_id))
        if ref.get() is None:
            return False
        ref.delete()
        return True

    def delete_all(self, table: str) -> bool:
        self._ref(table).delete()
        return True

    def upload(self, content: bytes, path: str, content_type: Optional[str] = None) -> str:
        bucket = storage.bucket(app=self.app)
        blob = bucket.blob(path)
        blob.upload_from_string(content, content_type=content_type or "application/octet-stream")
        blob.make_public()
        return blob.public_url

    def execute_query(self, query: str, params: Optional[Sequence[Any]] = None) -> Any:
        raise UnsupportedOperationError("Raw queries are not supported by the firebase provider")

    def ping(self) -> None:
        rtdb.reference("/", app=self.app).get(shallow=True)
