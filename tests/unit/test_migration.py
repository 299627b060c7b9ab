import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from arcana.db import migration
from arcana.db.database import DatabaseService
from arcana.db.providers import SqlProvider


def _sqlite_provider():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return SqlProvider(engine)


@pytest.fixture
def service():
    """Two independent SQL stores registered under different provider names."""
    return DatabaseService("sql", providers={"sql": _sqlite_provider(), "supabase": _sqlite_provider()})


def _seed(service, table, rows, provider="sql"):
    store = service.get_provider(provider)
    return [store.create(row, table) for row in rows]


class TestTransformations:
    def test_firebase_metadata_and_timestamps(self):
        record = {
            ".key": "k1",
            ".priority": 1,
            "title": "Thoth",
            "orderDate": 1760868000000,
            "published": {"seconds": 1760868000, "nanoseconds": 0},
            "count": 5,
        }
        cleaned = migration.remove_firebase_metadata(record, "k1", "decks")
        assert ".key" not in cleaned and ".priority" not in cleaned
        converted = migration.convert_firebase_timestamps(cleaned, "k1", "decks")
        assert converted["orderDate"].startswith("2025-10-19T")
        assert converted["published"].startswith("2025-10-19T")
        assert converted["count"] == 5

    def test_add_sql_timestamps_prefers_existing_values(self):
        out = migration.add_sql_timestamps({"createdAt": "2025-01-01T00:00:00+00:00"}, "k", "t")
        assert out["created_at"] == "2025-01-01T00:00:00+00:00"
        assert out["updated_at"]

    def test_sql_to_document(self):
        record = {"id": "1", "created_at": "x", "updated_at": "y", "shipped_at": "2026-10-19T00:00:00Z"}
        stripped = migration.remove_sql_metadata(record, "1", "orders")
        assert stripped == {"shipped_at": "2026-10-19T00:00:00Z"}
        converted = migration.convert_to_firebase_timestamps(stripped, "1", "orders")
        assert converted["shipped_at"] == 1792368000000

    def test_sanitize_field_names(self):
        assert migration.sanitize_field_names({"Card Name": 1, "price$": 2}, "k", "t") == {"card_name": 1, "price_": 2}

    def test_required_fields_and_defaults(self):
        combined = migration.combine_transformations(
            migration.add_defaults({"stock": 0, "name": "unnamed"}),
            None,
            migration.validate_required_fields(["name", "price"]),
        )
        assert combined({"name": "Tower", "price": 3}, "k", "t") == {"stock": 0, "name": "Tower", "price": 3}
        with pytest.raises(ValueError, match="Required field 'price'"):
            combined({"name": "Tower"}, "k", "t")

    def test_recommended_transformation(self):
        assert migration.recommended_transformation("sql", "supabase") is None
        document_to_sql = migration.recommended_transformation("firebase", "sql")
        out = document_to_sql({".key": "a", "title": "x"}, "a", "decks")
        assert ".key" not in out and "created_at" in out


class TestValidateSchema:
    SCHEMA = {
        "name": {"required": True, "type": "string", "max_length": 5},
        "price": {"type": "number"},
        "sku": {"pattern": r"^[A-Z]{3}-\d+$"},
        "status": {"enum": ["pending", "paid"]},
    }

    def test_valid_record(self):
        result = migration.validate_schema({"name": "Tower", "price": 3, "sku": "TAR-1", "status": "paid"}, self.SCHEMA)
        assert result == {"valid": True, "errors": []}

    def test_collects_every_problem(self):
        result = migration.validate_schema(
            {"name": "Too long", "price": True, "sku": "bad", "status": "lost"}, self.SCHEMA
        )
        assert result["valid"] is False
        assert len(result["errors"]) == 4
        assert migration.validate_schema({}, self.SCHEMA)["errors"] == ["Field 'name' is required"]


class TestMigrateData:
    def test_copies_records_between_providers(self, service):
        _seed(service, "decks", [{"title": "Thoth"}, {"title": "Mini"}])
        results = service.migrate_data("sql", "supabase", ["decks"])
        assert results["summary"]["migrated_records"] == 2
        assert results["summary"]["successful_tables"] == 1
        assert results["tables"]["decks"]["status"] == "success"
        copied = service.get_provider("supabase").read_all("decks")
        assert sorted(r["title"] for r in copied) == ["Mini", "Thoth"]

    def test_same_provider_is_rejected(self, service):
        with pytest.raises(ValueError):
            migration.migrate_data(service, "sql", "sql", ["decks"])

    def test_dry_run_writes_nothing(self, service):
        _seed(service, "decks", [{"title": "Thoth"}])
        results = migration.migrate_data(service, "sql", "supabase", ["decks"], dry_run=True)
        assert results["tables"]["decks"]["records"][0]["status"] == "validated"
        assert service.get_provider("supabase").read_all("decks") == []

    def test_partial_failure(self, service):
        _seed(service, "decks", [{"title": "Thoth"}, {"title": None}])
        results = migration.migrate_data(
            service, "sql", "supabase", ["decks"], transform=migration.validate_required_fields(["title"])
        )
        table = results["tables"]["decks"]
        assert table["status"] == "partial-success"
        assert table["failed_records"] == 1
        assert "Required field 'title'" in table["errors"][0]["error"]

    def test_clear_target(self, service):
        _seed(service, "decks", [{"title": "Thoth"}])
        _seed(service, "decks", [{"title": "Old"}], provider="supabase")
        migration.migrate_data(service, "sql", "supabase", ["decks"], clear_target=True)
        assert [r["title"] for r in service.get_provider("supabase").read_all("decks")] == ["Thoth"]

    def test_compare_covers_each_table(self, service):
        _seed(service, "decks", [{"id": "d1", "title": "Thoth"}, {"id": "d2", "title": "Mini"}])
        _seed(service, "decks", [{"id": "d1", "title": "Thoth (2nd ed.)"}], provider="supabase")
        _seed(service, "spreads", [{"id": "s1", "title": "Celtic Cross"}], provider="supabase")

        diff = migration.compare_data(service, "sql", "supabase", ["decks", "spreads"])
        assert set(diff) == {"decks", "spreads"}
        assert diff["decks"]["details"]["only_in_first"] == ["d2"]
        assert diff["decks"]["content_differences"] == 1
        assert diff["decks"]["details"]["content_differences"][0]["sql"]["title"] == "Thoth"
        assert diff["spreads"]["only_in_second"] == 1
        assert diff["spreads"]["total_first"] == 0

    def test_empty_source_table_is_skipped(self, service):
        _seed(service, "decks", [{"title": "Thoth"}])
        _seed(service, "spreads", [{"title": "Celtic Cross"}], provider="supabase")
        results = migration.migrate_data(service, "sql", "supabase", ["decks", "spreads"], clear_target=True)
        assert results["tables"]["spreads"]["status"] == "skipped"
        assert results["tables"]["decks"]["status"] == "success"
        assert results["summary"]["skipped_tables"] == 1
        assert results["summary"]["successful_tables"] == 1
        assert results["summary"]["failed_tables"] == 0
        assert [r["title"] for r in service.get_provider("supabase").read_all("spreads")] == ["Celtic Cross"]

        rollback = migration.rollback_migration(service, results)
        assert "spreads" not in rollback["rollback_actions"]

    def test_compare_and_rollback(self, service):
        _seed(service, "decks", [{"title": "Thoth"}, {"title": "Mini"}])
        results = migration.migrate_data(service, "sql", "supabase", ["decks"])

        diff = migration.compare_data(service, "sql", "supabase", ["decks"])["decks"]
        # SQL to SQL copies keep their ids
        assert diff["total_first"] == 2 and diff["total_second"] == 2
        assert diff["common"] == 2 and diff["only_in_first"] == 0
        assert diff["content_differences"] == 0

        rollback = migration.rollback_migration(service, results, restore_source_data=True)
        actions = rollback["rollback_actions"]["decks"]["actions"]
        assert actions[0] == {"type": "delete_target_data", "records_deleted": 2, "total_records": 2}
        assert actions[1]["status"] == "not_implemented"
        assert rollback["summary"]["successful_tables"] == 1
        assert service.get_provider("supabase").read_all("decks") == []
        assert len(service.get_provider("sql").read_all("decks")) == 2


class TestPreviewAndReports:
    def test_preview(self, service):
        _seed(service, "decks", [{"title": "Thoth", "notes": None}, {"title": "Mini", "notes": None}])
        preview = migration.preview_migration(service, "sql", "supabase", ["decks", "empty"])
        decks = preview["tables"]["decks"]
        assert decks["record_count"] == 2
        assert decks["field_analysis"]["title"]["types"] == ["string"]
        assert any("notes" in w and "null" in w for w in decks["warnings"])
        assert preview["tables"]["empty"]["warnings"] == ["Table is empty"]
        assert preview["summary"]["total_estimated_records"] == 2

    def test_report_and_persistence(self, service, tmp_path):
        _seed(service, "decks", [{"title": "Thoth"}])
        results = migration.migrate_data(service, "sql", "supabase", ["decks"])
        report = migration.generate_report(results)
        assert report.startswith("# Migration Report")
        assert "**Records:** 1/1 migrated" in report
        assert "### decks" in report

        path = migration.export_results(results, str(tmp_path / "results.json"))
        assert migration.import_results(path)["summary"]["migrated_records"] == 1
        assert json.loads((tmp_path / "results.json").read_text())["from_provider"] == "sql"

        report_path = migration.save_report(results, str(tmp_path / "report.md"))
        assert (tmp_path / "report.md").read_text(encoding="utf-8") == report
        assert report_path.endswith("report.md")
