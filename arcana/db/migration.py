"""
Provider-to-provider data migration utilities.

Moves records between any two facade providers (sql, supabase, firebase),
optionally reshaping each record on the way. Results are plain dicts so they
can be exported to JSON, turned into a markdown report, compared, previewed
and rolled back.

A transformation is a callable ``(record, key, table) -> record``.
"""
import json
import logging
import random
import re
import time
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from arcana.db.schema_inference import is_iso_datetime, parse_datetime

logger = logging.getLogger(__name__)

Transformation = Callable[[Dict[str, Any], str, str], Dict[str, Any]]

_TIMESTAMP_FIELD_RE = re.compile(r"(_at|Time|Date)")
_FIELD_CLEAN_RE = re.compile(r"[^a-zA-Z0-9_]")
_MS_THRESHOLD = 1_000_000_000_000


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _timestamp_filename(prefix: str, suffix: str) -> str:
    stamp = re.sub(r"[:.+]", "-", _now_iso())
    return f"{prefix}-{stamp}.{suffix}"


# ----------------------------------------------------------------------
# Transformations
# ----------------------------------------------------------------------
def remove_firebase_metadata(record, key, table):
    return {k: v for k, v in record.items() if k not in (".key", ".priority")}


def convert_firebase_timestamps(record, key, table):
    converted = dict(record)
    for field, value in record.items():
        if isinstance(value, dict) and value.get("seconds") and "nanoseconds" in value:
            millis = value["seconds"] * 1000 + value["nanoseconds"] / 1_000_000
            converted[field] = datetime.fromtimestamp(millis / 1000, UTC).isoformat()
        elif _TIMESTAMP_FIELD_RE.search(field) and isinstance(value, (int, float)) and not isinstance(value, bool):
            if value > _MS_THRESHOLD:
                converted[field] = datetime.fromtimestamp(value / 1000, UTC).isoformat()
    return converted


def add_sql_timestamps(record, key, table):
    now = _now_iso()
    out = dict(record)
    out["created_at"] = record.get("created_at") or record.get("createdAt") or now
    out["updated_at"] = record.get("updated_at") or record.get("updatedAt") or now
    return out


def remove_sql_metadata(record, key, table):
    return {k: v for k, v in record.items() if k not in ("id", "created_at", "updated_at")}


def convert_to_firebase_timestamps(record, key, table):
    converted = dict(record)
    for field, value in record.items():
        if is_iso_datetime(value):
            parsed = parse_datetime(value)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            converted[field] = int(parsed.timestamp() * 1000)
    return converted


def sanitize_field_names(record, key, table):
    return {_FIELD_CLEAN_RE.sub("_", field).lower(): value for field, value in record.items()}


def validate_required_fields(required: Iterable[str]) -> Transformation:
    fields = list(required)

    def _validate(record, key, table):
        for field in fields:
            if record.get(field) is None:
                raise ValueError(f"Required field '{field}' is missing or null")
        return record

    return _validate


def add_defaults(defaults: Mapping[str, Any]) -> Transformation:
    def _apply(record, key, table):
        return {**defaults, **record}

    return _apply


def combine_transformations(*transformations: Optional[Transformation]) -> Transformation:
    steps = [t for t in transformations if callable(t)]

    def _combined(record, key, table):
        result = record
        for step in steps:
            result = step(result, key, table)
        return result

    return _combined


_DOCUMENT_TO_SQL = (remove_firebase_metadata, convert_firebase_timestamps, add_sql_timestamps)
_SQL_TO_DOCUMENT = (remove_sql_metadata, convert_to_firebase_timestamps)

TRANSFORMATIONS: Dict[tuple, tuple] = {
    ("firebase", "supabase"): _DOCUMENT_TO_SQL,
    ("firebase", "sql"): _DOCUMENT_TO_SQL,
    ("supabase", "firebase"): _SQL_TO_DOCUMENT,
    ("sql", "firebase"): _SQL_TO_DOCUMENT,
}


def recommended_transformation(source: str, target: str) -> Optional[Transformation]:
    steps = TRANSFORMATIONS.get((source, target))
    if not steps:
        logger.info("No specific transformation for %s -> %s", source, target)
        return None
    return combine_transformations(*steps)


# ----------------------------------------------------------------------
# Schema validation
# ----------------------------------------------------------------------
_TYPE_NAMES = {
    "string": str,
    "number": (int, float),
    "integer": int,
    "boolean": bool,
    "object": dict,
    "array": list,
}


def validate_schema(record: Mapping[str, Any], schema: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
    """Check ``record`` against simple per-field rules.

    Supported rules: ``required``, ``type`` (string/number/integer/boolean/
    object/array), ``max_length``, ``pattern`` and ``enum``.
    """
    errors: List[str] = []
    for field, rules in schema.items():
        value = record.get(field)
        if value is None:
            if rules.get("required"):
                errors.append(f"Field '{field}' is required")
            continue
        expected = rules.get("type")
        if expected:
            python_type = _TYPE_NAMES.get(expected)
            wrong_bool = isinstance(value, bool) and expected in ("number", "integer")
            if python_type is None or not isinstance(value, python_type) or wrong_bool:
                errors.append(f"Field '{field}' must be of type {expected}, got {type(value).__name__}")
        max_length = rules.get("max_length")
        if max_length and isinstance(value, str) and len(value) > max_length:
            errors.append(f"Field '{field}' exceeds maximum length of {max_length}")
        pattern = rules.get("pattern")
        if pattern and not re.search(pattern, str(value)):
            errors.append(f"Field '{field}' does not match required pattern")
        allowed = rules.get("enum")
        if allowed and value not in allowed:
            errors.append(f"Field '{field}' must be one of: {', '.join(map(str, allowed))}")
    return {"valid": not errors, "errors": errors}


# ----------------------------------------------------------------------
# Migration
# ----------------------------------------------------------------------
def _table_status(total: int, migrated: int) -> str:
    if total == 0:
        return "skipped"
    if migrated == total:
        return "success"
    if migrated > 0:
        return "partial-success"
    return "failed"


def migrate_data(
    service,
    source: str,
    target: str,
    tables: Iterable[str],
    transform: Optional[Transformation] = None,
    dry_run: bool = False,
    clear_target: bool = False,
    use_recommended: bool = True,
) -> Dict[str, Any]:
    """Copy every record of ``tables`` from ``source`` to ``target``.

    Per-record failures are collected rather than aborting the table; a table
    whose source cannot be read is marked ``failed`` and an empty source table
    is ``skipped`` without touching the target. With ``dry_run`` the
    transformation runs but nothing is written.
    """
    if source == target:
        raise ValueError("Source and destination providers cannot be the same")
    src = service.get_provider(source)
    dst = service.get_provider(target)
    if transform is None and use_recommended:
        transform = recommended_transformation(source, target)

    started = time.monotonic()
    results: Dict[str, Any] = {
        "from_provider": source,
        "to_provider": target,
        "dry_run": dry_run,
        "start_time": _now_iso(),
        "tables": {},
        "summary": {
            "total_tables": 0,
            "successful_tables": 0,
            "failed_tables": 0,
            "skipped_tables": 0,
            "total_records": 0,
            "migrated_records": 0,
            "failed_records": 0,
            "errors": [],
        },
    }
    summary = results["summary"]
    logger.info("Starting migration from %s to %s (dry_run=%s)", source, target, dry_run)

    for table in tables:
        summary["total_tables"] += 1
        table_result: Dict[str, Any] = {
            "status": "failed",
            "total_records": 0,
            "migrated_records": 0,
            "failed_records": 0,
            "start_time": _now_iso(),
            "records": [],
            "errors": [],
        }
        results["tables"][table] = table_result
        try:
            rows = src.read_all(table)
            if rows and clear_target and not dry_run:
                dst.delete_all(table)
        except Exception as e:
            logger.error("Migration of table %s failed: %s", table, e)
            table_result["errors"].append({"error": str(e)})
            table_result["end_time"] = _now_iso()
            summary["failed_tables"] += 1
            summary["errors"].append(f"{table}: {e}")
            continue

        table_result["total_records"] = len(rows)
        for row in rows:
            key = str(row.get("id"))
            try:
                data = transform(dict(row), key, table) if transform else dict(row)
                if dry_run:
                    entry = {"original_key": key, "new_key": None, "status": "validated"}
                else:
                    created = dst.create(data, table)
                    entry = {"original_key": key, "new_key": str(created.get("id")), "status": "success"}
                table_result["migrated_records"] += 1
            except Exception as e:
                logger.warning("Failed to migrate %s/%s: %s", table, key, e)
                entry = {"original_key": key, "new_key": None, "status": "failed", "error": str(e)}
                table_result["failed_records"] += 1
                table_result["errors"].append({"key": key, "error": str(e)})
            table_result["records"].append(entry)

        table_result["status"] = _table_status(table_result["total_records"], table_result["migrated_records"])
        table_result["end_time"] = _now_iso()
        summary["total_records"] += table_result["total_records"]
        summary["migrated_records"] += table_result["migrated_records"]
        summary["failed_records"] += table_result["failed_records"]
        if table_result["status"] == "failed":
            summary["failed_tables"] += 1
        elif table_result["status"] == "skipped":
            summary["skipped_tables"] += 1
        else:
            summary["successful_tables"] += 1
        logger.info(
            "Migrated %s: %d/%d records (%s)",
            table, table_result["migrated_records"], table_result["total_records"], table_result["status"],
        )

    results["end_time"] = _now_iso()
    results["duration_ms"] = int((time.monotonic() - started) * 1000)
    return results


def compare_data(service, first: str, second: str, tables: Iterable[str]) -> Dict[str, Any]:
    """Diff the records of each table between two providers, keyed by id."""
    differences: Dict[str, Any] = {}
    for table in tables:
        data1 = {str(r.get("id")): r for r in service.get_provider(first).read_all(table)}
        data2 = {str(r.get("id")): r for r in service.get_provider(second).read_all(table)}
        only_in_first = sorted(set(data1) - set(data2))
        only_in_second = sorted(set(data2) - set(data1))
        common = sorted(set(data1) & set(data2))
        content_differences = []
        for key in common:
            left = json.dumps(data1[key], sort_keys=True, default=str)
            right = json.dumps(data2[key], sort_keys=True, default=str)
            if left != right:
                content_differences.append({"key": key, first: data1[key], second: data2[key]})
        differences[table] = {
            "total_first": len(data1),
            "total_second": len(data2),
            "only_in_first": len(only_in_first),
            "only_in_second": len(only_in_second),
            "common": len(common),
            "content_differences": len(content_differences),
            "details": {
                "only_in_first": only_in_first,
                "only_in_second": only_in_second,
                "content_differences": content_differences[:10],
            },
        }
    return differences


def rollback_migration(
    service,
    migration_results: Mapping[str, Any],
    delete_target_data: bool = True,
    restore_source_data: bool = False,
) -> Dict[str, Any]:
    """Undo a migration by deleting the records it created in the target."""
    rollback: Dict[str, Any] = {
        "start_time": _now_iso(),
        "original_migration": {
            "from": migration_results.get("from_provider"),
            "to": migration_results.get("to_provider"),
            "timestamp": migration_results.get("start_time"),
        },
        "rollback_actions": {},
        "summary": {"successful_tables": 0, "failed_tables": 0},
    }
    target = service.get_provider(migration_results["to_provider"])
    for table, table_result in migration_results.get("tables", {}).items():
        if table_result.get("status") not in ("success", "partial-success"):
            continue
        action: Dict[str, Any] = {"start_time": _now_iso(), "actions": []}
        rollback["rollback_actions"][table] = action
        try:
            if delete_target_data:
                created = [r for r in table_result.get("records", []) if r.get("status") == "success"]
                deleted = 0
                for record in created:
                    if target.delete(record["new_key"], table):
                        deleted += 1
                action["actions"].append(
                    {"type": "delete_target_data", "records_deleted": deleted, "total_records": len(created)}
                )
            if restore_source_data:
                # Migrations never delete source rows, so there is nothing to restore
                action["actions"].append(
                    {
                        "type": "restore_source_data",
                        "status": "not_implemented",
                        "message": "Source data restoration requires backup data from the original migration",
                    }
                )
            action["status"] = "success"
            rollback["summary"]["successful_tables"] += 1
        except Exception as e:
            logger.error("Rollback failed for table %s: %s", table, e)
            action["status"] = "failed"
            action["error"] = str(e)
            rollback["summary"]["failed_tables"] += 1
        action["end_time"] = _now_iso()
    rollback["end_time"] = _now_iso()
    return rollback


def _type_label(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (dict, list)):
        return "object"
    return type(value).__name__


def preview_migration(
    service,
    source: str,
    target: str,
    tables: Iterable[str],
    sample_size: int = 5,
) -> Dict[str, Any]:
    """Dry analysis of what a migration would move, with warnings and hints."""
    tables = list(tables)
    preview: Dict[str, Any] = {
        "from_provider": source,
        "to_provider": target,
        "timestamp": _now_iso(),
        "tables": {},
        "summary": {
            "total_tables": len(tables),
            "total_estimated_records": 0,
            "estimated_data_size": 0,
            "warnings": [],
            "recommendations": [],
        },
    }
    src = service.get_provider(source)
    summary = preview["summary"]
    for table in tables:
        table_preview: Dict[str, Any] = {
            "table_name": table,
            "record_count": 0,
            "estimated_size": 0,
            "sample_records": [],
            "field_analysis": {},
            "warnings": [],
            "recommendations": [],
        }
        preview["tables"][table] = table_preview
        try:
            rows = src.read_all(table)
        except Exception as e:
            table_preview["warnings"].append(f"Failed to analyze table: {e}")
            continue

        table_preview["record_count"] = len(rows)
        summary["total_estimated_records"] += len(rows)
        if not rows:
            table_preview["warnings"].append("Table is empty")
            continue

        for row in random.sample(rows, min(sample_size, len(rows)))[:3]:
            table_preview["sample_records"].append(
                {"key": str(row.get("id")), "data": json.dumps(row, default=str)[:200] + "..."}
            )

        stats: Dict[str, Dict[str, Any]] = {}
        total_size = 0
        for row in rows:
            total_size += len(json.dumps(row, default=str))
            for field, value in row.items():
                entry = stats.setdefault(
                    field, {"count": 0, "types": set(), "null_count": 0, "max_length": 0, "examples": []}
                )
                entry["count"] += 1
                if value is None:
                    entry["null_count"] += 1
                    continue
                entry["types"].add(_type_label(value))
                if isinstance(value, str):
                    entry["max_length"] = max(entry["max_length"], len(value))
                if len(entry["examples"]) < 3:
                    entry["examples"].append(value)

        for field, entry in stats.items():
            null_pct = entry["null_count"] / entry["count"] * 100
            analysis = {
                **entry,
                "types": sorted(entry["types"]),
                "presence": f"{entry['count'] / len(rows) * 100:.1f}%",
                "null_percentage": f"{null_pct:.1f}%",
            }
            table_preview["field_analysis"][field] = analysis
            if len(analysis["types"]) > 1:
                table_preview["warnings"].append(f"Field '{field}' has mixed types: {', '.join(analysis['types'])}")
            if null_pct > 50:
                table_preview["warnings"].append(f"Field '{field}' is null in {null_pct:.1f}% of records")
            if entry["max_length"] > 1000 and target in ("supabase", "sql"):
                table_preview["recommendations"].append(
                    f"Consider using TEXT type for field '{field}' (max length: {entry['max_length']})"
                )

        if source == "firebase" and target in ("supabase", "sql"):
            table_preview["recommendations"].append("Consider adding created_at and updated_at timestamps")
            table_preview["recommendations"].append("Review field names for SQL compatibility")

        table_preview["estimated_size"] = total_size
        summary["estimated_data_size"] += total_size

    size_mb = summary["estimated_data_size"] / (1024 * 1024)
    if size_mb > 100:
        summary["recommendations"].append(f"Large dataset ({size_mb:.2f}MB) - consider batch processing")
    if summary["total_estimated_records"] > 10000:
        summary["recommendations"].append("Large number of records - enable progress monitoring")
    return preview


# ----------------------------------------------------------------------
# Results persistence and reporting
# ----------------------------------------------------------------------
def export_results(results: Mapping[str, Any], filename: Optional[str] = None) -> str:
    path = Path(filename or _timestamp_filename("migration-results", "json"))
    path.write_text(json.dumps(results, indent=2, default=str), encoding="utf-8")
    logger.info("Migration results exported to %s", path)
    return str(path)


def import_results(filename: str) -> Dict[str, Any]:
    return json.loads(Path(filename).read_text(encoding="utf-8"))


def generate_report(results: Mapping[str, Any]) -> str:
    summary = results.get("summary", {})
    total = summary.get("total_records", 0)
    migrated = summary.get("migrated_records", 0)
    rate = (migrated / total * 100) if total else 0.0
    lines = [
        "# Migration Report",
        f"**Date:** {results.get('start_time')}",
        f"**Duration:** {results.get('duration_ms', 0)}ms",
        f"**From:** {results.get('from_provider')} -> **To:** {results.get('to_provider')}",
        "",
        "## Summary",
        f"- **Tables:** {summary.get('successful_tables', 0)}/{summary.get('total_tables', 0)} successful",
        f"- **Records:** {migrated}/{total} migrated",
        f"- **Success Rate:** {rate:.2f}%",
        "",
    ]
    if summary.get("errors"):
        lines.append("## Global Errors")
        lines.extend(f"- {error}" for error in summary["errors"])
        lines.append("")

    lines.append("## Table Details")
    for name, table in results.get("tables", {}).items():
        table_total = table.get("total_records", 0)
        table_rate = (table.get("migrated_records", 0) / table_total * 100) if table_total else 0.0
        lines.append(f"### {name}")
        lines.append(f"- **Status:** {table.get('status')}")
        lines.append(f"- **Records:** {table.get('migrated_records', 0)}/{table_total} ({table_rate:.2f}%)")
        lines.append(f"- **Duration:** {table.get('start_time')} -> {table.get('end_time')}")
        errors = table.get("errors") or []
        if errors:
            lines.append(f"- **Errors:** {len(errors)}")
            for error in errors[:3]:
                lines.append(f"  - {error.get('error') if isinstance(error, dict) else error}")
            if len(errors) > 3:
                lines.append(f"  - ... and {len(errors) - 3} more")
        lines.append("")
    return "\n".join(lines)


def save_report(results: Mapping[str, Any], filename: Optional[str] = None) -> str:
    path = Path(filename or _timestamp_filename("migration-report", "md"))
    path.write_text(generate_report(results), encoding="utf-8")
    logger.info("Migration report saved to %s", path)
    return str(path)
