import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.pool import StaticPool

from arcana.db.errors import DuplicateKeyError, InvalidIdentifierError
from arcana.db.providers import SqlProvider


@pytest.fixture
def provider(tmp_path):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield SqlProvider(engine, upload_dir=str(tmp_path / "uploads"))
    engine.dispose()


def _columns(provider, table):
    return {c["name"] for c in inspect(provider.engine).get_columns(table)}


class TestDynamicSchema:
    def test_first_write_creates_table_from_payload(self, provider):
        record = provider.create(
            {"title": "Rider-Waite", "cards": 78, "price": 24.5, "boxed": True, "meta": {"edition": 2}},
            "decks",
        )
        assert record["id"]
        assert record["title"] == "Rider-Waite"
        assert record["cards"] == 78
        assert record["price"] == 24.5
        assert record["boxed"] is True
        assert record["meta"] == {"edition": 2}
        assert _columns(provider, "decks") == {"id", "title", "cards", "price", "boxed", "meta"}

    def test_unknown_keys_become_columns(self, provider):
        first = provider.create({"title": "Thoth"}, "decks")
        second = provider.create({"title": "Marseille", "origin": "France"}, "decks")
        assert "origin" in _columns(provider, "decks")
        assert second["origin"] == "France"
        assert provider.read(first["id"], "decks")["origin"] is None

    def test_update_adds_columns(self, provider):
        record = provider.create({"title": "Thoth"}, "decks")
        updated = provider.update(record["id"], {"artist": "Lady Frieda Harris"}, "decks")
        assert updated["artist"] == "Lady Frieda Harris"
        assert updated["title"] == "Thoth"

    def test_timestamps_roundtrip_as_utc_iso(self, provider):
        record = provider.create({"published_at": "2026-10-19T10:00:00Z"}, "decks")
        assert record["published_at"] == "2026-10-19T10:00:00+00:00"

    def test_explicit_id_is_kept(self, provider):
        record = provider.create({"id": "deck-1", "title": "Thoth"}, "decks")
        assert record["id"] == "deck-1"
        assert provider.read("deck-1", "decks")["title"] == "Thoth"


class TestMissingTables:
    def test_reads_behave_like_empty_table(self, provider):
        assert provider.read_all("ghosts") == []
        assert provider.read("1", "ghosts") is None
        assert provider.get_items_by_key_value("name", "x", "ghosts") == []
        assert provider.read_by("name", "x", "ghosts") is None

    def test_writes_on_missing_records(self, provider):
        assert provider.update("1", {"a": 1}, "ghosts") is None
        assert provider.delete("1", "ghosts") is False
        assert provider.delete_all("ghosts") is True
        assert not inspect(provider.engine).has_table("ghosts")

    def test_unknown_lookup_column_returns_nothing(self, provider):
        provider.create({"title": "Thoth"}, "decks")
        assert provider.get_items_by_key_value("colour", "gold", "decks") == []

    def test_unsafe_names_are_rejected(self, provider):
        with pytest.raises(InvalidIdentifierError):
            provider.read_all("decks; drop table users")
        with pytest.raises(InvalidIdentifierError):
            provider.create({"bad key": 1}, "decks")


class TestLookups:
    def test_query_string_values_are_coerced(self, provider):
        provider.create({"title": "Thoth", "cards": 78, "boxed": True}, "decks")
        provider.create({"title": "Mini", "cards": 22, "boxed": False}, "decks")
        assert [r["title"] for r in provider.get_items_by_key_value("cards", "78", "decks")] == ["Thoth"]
        assert [r["title"] for r in provider.get_items_by_key_value("boxed", "false", "decks")] == ["Mini"]
        assert provider.get_item_key("title", "Mini", "decks") == provider.read_by("title", "Mini", "decks")["id"]

    def test_delete_and_delete_all(self, provider):
        a = provider.create({"title": "A"}, "decks")
        provider.create({"title": "B"}, "decks")
        assert provider.delete(a["id"], "decks") is True
        assert provider.delete(a["id"], "decks") is False
        assert len(provider.read_all("decks")) == 1
        assert provider.delete_all("decks") is True
        assert provider.read_all("decks") == []


class TestCanonicalTables:
    def test_users_table_uses_model_defaults(self, provider):
        user = provider.create({"email": "reader@example.com"}, "users")
        assert user["role"] == "user"
        assert user["created_at"]
        assert "wallet_address" in user

    def test_duplicate_email_is_rejected(self, provider):
        provider.create({"email": "reader@example.com"}, "users")
        with pytest.raises(DuplicateKeyError):
            provider.create({"email": "reader@example.com"}, "users")

    def test_shop_item_defaults(self, provider):
        item = provider.create({"name": "Moon Candle", "price": 12.0}, "shop_items")
        assert item["stock"] == 0
        assert item["is_active"] is True
        assert item["category"] == "general"


class TestFilesAndQueries:
    def test_upload_writes_under_upload_dir(self, provider, tmp_path):
        url = provider.upload(b"png-bytes", "images/card.png", "image/png")
        assert url == "/uploads/images/card.png"
        assert (tmp_path / "uploads" / "images" / "card.png").read_bytes() == b"png-bytes"

    def test_upload_rejects_traversal(self, provider):
        with pytest.raises(ValueError):
            provider.upload(b"x", "../outside.txt")

    def test_execute_query(self, provider):
        provider.create({"title": "Thoth", "cards": 78}, "decks")
        rows = provider.execute_query("SELECT title FROM decks WHERE cards = :cards", {"cards": 78})
        assert rows == [{"title": "Thoth"}]
        assert provider.execute_query("UPDATE decks SET cards = 79") == 1

    def test_ping(self, provider):
        provider.ping()
