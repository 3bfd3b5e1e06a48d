"""Tests for the document stores (memory and DuckDB)."""

import pytest

from tenantdb.database import (
    PROJECTS,
    TABLES,
    DuckDBDocumentStore,
    MemoryDocumentStore,
    create_document_store,
)


@pytest.fixture(params=["memory", "duckdb"])
def store(request, tmp_path):
    """Run every test against both backends."""
    if request.param == "memory":
        store = MemoryDocumentStore()
    else:
        store = DuckDBDocumentStore(tmp_path / "data" / "tenantdb.duckdb")
    store.initialize()
    return store


class TestDocumentStore:
    """Behavior shared by every backend."""

    def test_get_missing(self, store):
        assert store.get(TABLES, "nope") is None

    def test_put_get(self, store):
        body = {"id": "t1", "name": "items", "rows": [{"id": "r1", "n": 1.5, "ok": True, "x": None}]}

        store.put(TABLES, "t1", body, project_id="p1")

        assert store.get(TABLES, "t1") == body

    def test_put_replaces_body(self, store):
        store.put(TABLES, "t1", {"v": 1}, project_id="p1")
        store.put(TABLES, "t1", {"v": 2}, project_id="p1")

        assert store.get(TABLES, "t1") == {"v": 2}
        assert store.count(TABLES) == 1

    def test_returned_documents_are_copies(self, store):
        store.put(TABLES, "t1", {"rows": []}, project_id="p1")

        doc = store.get(TABLES, "t1")
        doc["rows"].append({"id": "r1"})

        assert store.get(TABLES, "t1") == {"rows": []}

    def test_key_order_preserved(self, store):
        store.put(TABLES, "t1", {"rows": [{"id": "1", "z": 1, "a": 2}]}, project_id="p1")

        row = store.get(TABLES, "t1")["rows"][0]

        assert list(row) == ["id", "z", "a"]

    def test_scan_in_insertion_order(self, store):
        for doc_id in ("c", "a", "b"):
            store.put(TABLES, doc_id, {"id": doc_id}, project_id="p1")
        # An update keeps the original position
        store.put(TABLES, "c", {"id": "c", "updated": True}, project_id="p1")

        assert [d["id"] for d in store.scan(TABLES)] == ["c", "a", "b"]

    def test_scan_by_project(self, store):
        store.put(TABLES, "t1", {"id": "t1"}, project_id="p1")
        store.put(TABLES, "t2", {"id": "t2"}, project_id="p2")

        assert [d["id"] for d in store.scan(TABLES, project_id="p2")] == ["t2"]

    def test_collections_are_separate(self, store):
        store.put(TABLES, "x", {"kind": "table"}, project_id="p1")
        store.put(PROJECTS, "x", {"kind": "project"}, project_id="x")

        assert store.get(TABLES, "x") == {"kind": "table"}
        assert store.get(PROJECTS, "x") == {"kind": "project"}

    def test_delete(self, store):
        store.put(TABLES, "t1", {}, project_id="p1")

        assert store.delete(TABLES, "t1") is True
        assert store.delete(TABLES, "t1") is False
        assert store.get(TABLES, "t1") is None

    def test_delete_project_documents(self, store):
        store.put(TABLES, "t1", {}, project_id="p1")
        store.put(TABLES, "t2", {}, project_id="p1")
        store.put(TABLES, "t3", {}, project_id="p2")

        assert store.delete_project_documents(TABLES, "p1") == 2
        assert store.delete_project_documents(TABLES, "p1") == 0
        assert store.count(TABLES) == 1

    def test_is_available(self, store):
        assert store.is_available()


class TestDuckDBDocumentStore:
    """DuckDB-specific behavior."""

    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "tenantdb.duckdb"
        first = DuckDBDocumentStore(path)
        first.initialize()
        first.put(TABLES, "t1", {"name": "items"}, project_id="p1")

        second = DuckDBDocumentStore(path)
        second.initialize()

        assert second.get(TABLES, "t1") == {"name": "items"}
        assert [d["name"] for d in second.scan(TABLES, project_id="p1")] == ["items"]


class TestCreateDocumentStore:
    def test_memory(self):
        assert isinstance(create_document_store("memory"), MemoryDocumentStore)

    def test_duckdb(self, tmp_path):
        store = create_document_store("duckdb", tmp_path / "x.duckdb")
        assert store.backend == "duckdb"

    def test_duckdb_requires_path(self):
        with pytest.raises(ValueError):
            create_document_store("duckdb")

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_document_store("sqlite")
