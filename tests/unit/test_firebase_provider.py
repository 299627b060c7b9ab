"""FirebaseProvider against an in-memory Realtime Database reference."""
import copy
import itertools

import pytest

from arcana.db.errors import UnsupportedOperationError
from arcana.db.providers import firebase_provider
from arcana.db.providers.firebase_provider import FirebaseProvider, _snapshot_to_records

_push_ids = itertools.count(1)


class _ChildQuery:
    def __init__(self, ref, child):
        self.ref = ref
        self.child = child
        self.value = None

    def equal_to(self, value):
        self.value = value
        return self

    def get(self):
        data = self.ref.get() or {}
        return {k: v for k, v in data.items() if isinstance(v, dict) and v.get(self.child) == self.value}


class FakeReference:
    def __init__(self, root, path):
        self.root = root
        self.parts = [p for p in path.split("/") if p]

    @property
    def key(self):
        return self.parts[-1] if self.parts else None

    def _parent(self, create=False):
        node = self.root
        for part in self.parts[:-1]:
            if part not in node:
                if not create:
                    return None
                node[part] = {}
            node = node[part]
        return node

    def get(self, shallow=False):
        if not self.parts:
            return copy.deepcopy(self.root)
        parent = self._parent()
        if parent is None:
            return None
        return copy.deepcopy(parent.get(self.parts[-1]))

    def set(self, value):
        self._parent(create=True)[self.parts[-1]] = copy.deepcopy(value)

    def update(self, value):
        parent = self._parent(create=True)
        parent.setdefault(self.parts[-1], {}).update(copy.deepcopy(value))

    def delete(self):
        parent = self._parent()
        if parent is not None:
            parent.pop(self.parts[-1], None)

    def push(self, value):
        child = FakeReference(self.root, "/".join(self.parts + [f"-N{next(_push_ids):04d}"]))
        child.set(value)
        return child

    def order_by_child(self, child):
        return _ChildQuery(self, child)


@pytest.fixture
def tree(monkeypatch):
    root = {}

    def reference(path="/", app=None):
        return FakeReference(root, path)

    monkeypatch.setattr(firebase_provider.rtdb, "reference", reference)
    return root


@pytest.fixture
def provider(tree):
    return FirebaseProvider(app=object())


def test_push_keys_become_ids(provider, tree):
    record = provider.create({"title": "Thoth", "cards": 78}, "decks")
    assert record["id"].startswith("-N")
    assert tree["decks"][record["id"]] == {"title": "Thoth", "cards": 78}
    assert provider.read(record["id"], "decks") == {"title": "Thoth", "cards": 78, "id": record["id"]}


def test_explicit_id_uses_set(provider, tree):
    record = provider.create({"id": "deck-1", "title": "Thoth"}, "decks")
    assert record == {"title": "Thoth", "id": "deck-1"}
    assert "id" not in tree["decks"]["deck-1"]


def test_read_all_and_lookup(provider):
    provider.create({"title": "Thoth", "cards": 78}, "decks")
    provider.create({"title": "Mini", "cards": 22}, "decks")
    assert {r["title"] for r in provider.read_all("decks")} == {"Thoth", "Mini"}
    matches = provider.get_items_by_key_value("cards", 22, "decks")
    assert [m["title"] for m in matches] == ["Mini"]
    assert provider.read_by("title", "Thoth", "decks")["cards"] == 78


def test_missing_paths(provider):
    assert provider.read_all("ghosts") == []
    assert provider.read("x", "ghosts") is None
    assert provider.update("x", {"a": 1}, "ghosts") is None
    assert provider.delete("x", "ghosts") is False


def test_update_and_delete(provider):
    record = provider.create({"title": "Thoth"}, "decks")
    updated = provider.update(record["id"], {"id": "ignored", "artist": "Harris"}, "decks")
    assert updated == {"title": "Thoth", "artist": "Harris", "id": record["id"]}
    assert provider.delete(record["id"], "decks") is True
    assert provider.read(record["id"], "decks") is None


def test_delete_all(provider, tree):
    provider.create({"title": "A"}, "decks")
    provider.create({"title": "B"}, "decks")
    assert provider.delete_all("decks") is True
    assert "decks" not in tree


def test_execute_query_is_unsupported(provider):
    with pytest.raises(UnsupportedOperationError):
        provider.execute_query("SELECT 1")


def test_snapshot_list_form():
    assert _snapshot_to_records([None, {"a": 1}, "junk"]) == [{"a": 1, "id": "1"}]
    assert _snapshot_to_records(None) == []
