"""Unit tests for TableEngine, including concurrent writers."""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

import pytest

from tenantdb.engine import drop_row_key, rename_row_key
from tenantdb.errors import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def engine(platform):
    return platform.engine


@pytest.fixture
def project_id(demo_project):
    return demo_project["id"]


@pytest.fixture
def items(engine, project_id):
    return engine.create_table(project_id, "items")


class TestRowKeyHelpers:
    """Tests for the row rewrite helpers used by column migrations."""

    def test_rename_keeps_position(self):
        row = {"id": "1", "a": 1, "z": 2}
        assert list(rename_row_key(row, "a", "b").items()) == [("id", "1"), ("b", 1), ("z", 2)]

    def test_rename_missing_key_is_noop(self):
        row = {"id": "1"}
        assert rename_row_key(row, "a", "b") is row

    def test_rename_overwrites_stray_target(self):
        assert rename_row_key({"a": 1, "b": 2}, "a", "b") == {"b": 1}

    def test_drop_row_key(self):
        assert drop_row_key({"id": "1", "a": 1}, "a") == {"id": "1"}


class TestTables:
    """Table lifecycle."""

    def test_create_table_has_primary_column(self, items):
        assert items["columns"] == [{"name": "id", "type": "uuid", "primary": True}]
        assert items["rows"] == []

    def test_duplicate_name(self, engine, project_id, items):
        with pytest.raises(ConflictError):
            engine.create_table(project_id, "items")

    def test_empty_name(self, engine, project_id):
        with pytest.raises(ValidationError):
            engine.create_table(project_id, "")

    def test_unknown_project(self, engine):
        with pytest.raises(NotFoundError):
            engine.create_table("nope", "items")

    def test_table_ref_by_id_or_name(self, engine, project_id, items):
        assert engine.get_table(project_id, "items")["id"] == items["id"]
        assert engine.get_table(project_id, items["id"])["name"] == "items"

    def test_table_ref_scoped_to_project(self, engine, platform, items):
        other = platform.tenants.create_project("acc_1", "Other")

        with pytest.raises(NotFoundError):
            engine.get_table(other["id"], items["id"])

    def test_drop_table(self, engine, project_id, items):
        engine.drop_table(project_id, "items")

        with pytest.raises(NotFoundError):
            engine.get_table(project_id, "items")
        with pytest.raises(NotFoundError):
            engine.drop_table(project_id, "items")


class TestColumns:
    """Schema changes and their row migrations."""

    def test_rename_moves_every_value(self, engine, project_id, items):
        engine.add_column(project_id, "items", "a", "text")
        for value in ("x", "y", "z"):
            engine.insert_row(project_id, "items", {"a": value})
        engine.insert_row(project_id, "items", {"other": 1})

        engine.rename_or_retype_column(project_id, "items", "a", new_name="b")

        rows = engine.list_rows(project_id, "items")
        assert len(rows) == 4
        assert [r.get("b") for r in rows] == ["x", "y", "z", None]
        assert not any("a" in r for r in rows)
        assert [c["name"] for c in engine.get_table(project_id, "items")["columns"]] == ["id", "b"]

    def test_rename_and_retype_together(self, engine, project_id, items):
        engine.add_column(project_id, "items", "a", "text")

        table = engine.rename_or_retype_column(project_id, "items", "a", new_name="b", new_type="int")

        assert table["columns"][1] == {"name": "b", "type": "int"}

    def test_rename_to_same_name_with_type(self, engine, project_id, items):
        engine.add_column(project_id, "items", "a", "text")

        table = engine.rename_or_retype_column(project_id, "items", "a", new_name="a", new_type="int")

        assert table["columns"][1] == {"name": "a", "type": "int"}

    def test_primary_column_is_protected(self, engine, project_id, items):
        with pytest.raises(ValidationError):
            engine.delete_column(project_id, "items", "id")
        with pytest.raises(ValidationError):
            engine.rename_or_retype_column(project_id, "items", "id", new_name="pk")

        assert engine.get_table(project_id, "items")["columns"] == items["columns"]

    def test_failed_change_writes_nothing(self, engine, project_id, items):
        engine.add_column(project_id, "items", "a", "text")
        engine.add_column(project_id, "items", "b", "text")
        engine.insert_row(project_id, "items", {"a": 1, "b": 2})

        with pytest.raises(ConflictError):
            engine.rename_or_retype_column(project_id, "items", "a", new_name="b")

        assert engine.list_rows(project_id, "items")[0]["a"] == 1

    def test_add_then_delete_column(self, engine, project_id, items):
        engine.add_column(project_id, "items", "score", "int")
        engine.insert_row(project_id, "items", {"score": 5})
        assert engine.list_rows(project_id, "items")[0]["score"] == 5

        engine.delete_column(project_id, "items", "score")

        assert "score" not in engine.list_rows(project_id, "items")[0]

    def test_missing_column(self, engine, project_id, items):
        with pytest.raises(NotFoundError):
            engine.delete_column(project_id, "items", "nope")
        with pytest.raises(NotFoundError):
            engine.rename_or_retype_column(project_id, "items", "nope", new_type="int")


class TestRows:
    """Row CRUD."""

    def test_insert_generates_id(self, engine, project_id, items):
        row = engine.insert_row(project_id, "items", {"id": "mine", "title": "Widget"})

        assert row["id"] != "mine"
        assert row["title"] == "Widget"
        assert list(row)[0] == "id"

    def test_ids_unique_across_lifetime(self, engine, project_id, items):
        seen = set()
        for _ in range(20):
            row = engine.insert_row(project_id, "items", {})
            seen.add(row["id"])
            engine.delete_row(project_id, "items", row["id"])
        for _ in range(20):
            seen.add(engine.insert_row(project_id, "items", {})["id"])

        assert len(seen) == 40

    def test_insert_requires_object(self, engine, project_id, items):
        with pytest.raises(ValidationError):
            engine.insert_row(project_id, "items", [1, 2, 3])
        with pytest.raises(ValidationError):
            engine.insert_row(project_id, "items", "text")

    def test_update_merges(self, engine, project_id, items):
        row = engine.insert_row(project_id, "items", {"a": 1, "b": 2})

        updated = engine.update_row(project_id, "items", row["id"], {"b": 3, "c": 4, "id": "x"})

        assert updated == {"id": row["id"], "a": 1, "b": 3, "c": 4}
        assert engine.list_rows(project_id, "items") == [updated]

    def test_update_missing_row(self, engine, project_id, items):
        with pytest.raises(NotFoundError):
            engine.update_row(project_id, "items", "nope", {"a": 1})

    def test_delete_row(self, engine, project_id, items):
        keep = engine.insert_row(project_id, "items", {"n": 1})
        doomed = engine.insert_row(project_id, "items", {"n": 2})

        removed = engine.delete_row(project_id, "items", doomed["id"])

        assert removed == doomed
        assert engine.list_rows(project_id, "items") == [keep]
        with pytest.raises(NotFoundError):
            engine.delete_row(project_id, "items", doomed["id"])

    def test_list_rows_pagination(self, engine, project_id, items):
        for n in range(5):
            engine.insert_row(project_id, "items", {"n": n})

        assert [r["n"] for r in engine.list_rows(project_id, "items", limit=2)] == [0, 1]
        assert [r["n"] for r in engine.list_rows(project_id, "items", limit=2, offset=3)] == [3, 4]
        assert [r["n"] for r in engine.list_rows(project_id, "items", offset=4)] == [4]
        assert engine.list_rows(project_id, "items", limit=0) == []

    def test_row_writes_publish_changes(self, platform, engine, project_id, items):
        received = []
        subscription = platform.change_bus.connect(project_id, received.append)
        platform.change_bus.subscribe(subscription, "items")

        row = engine.insert_row(project_id, "items", {"a": 1})
        updated = engine.update_row(project_id, "items", row["id"], {"a": 2})
        removed = engine.delete_row(project_id, "items", row["id"])

        assert [(m["event"], m["record"]) for m in received] == [
            ("INSERT", row),
            ("UPDATE", updated),
            ("DELETE", removed),
        ]
        assert engine.list_rows(project_id, "items") == []

    def test_scenario_demo_items_widget(self, platform):
        project = platform.tenants.create_project("acc_1", "Demo")
        engine = platform.engine

        engine.create_table(project["id"], "items")
        engine.add_column(project["id"], "items", "title", "text")
        row = engine.insert_row(project["id"], "items", {"title": "Widget"})

        assert engine.list_rows(project["id"], "items") == [{"id": row["id"], "title": "Widget"}]


class TestConcurrency:
    """Concurrent writers on one table must not lose updates."""

    def test_concurrent_inserts(self, engine, project_id, items):
        writers = 50

        def insert(n):
            return engine.insert_row(project_id, "items", {"n": n})

        with ThreadPoolExecutor(max_workers=10) as executor:
            futures = [executor.submit(insert, n) for n in range(writers)]
            inserted = [f.result() for f in as_completed(futures)]

        rows = engine.list_rows(project_id, "items")
        assert len(rows) == writers
        assert len({r["id"] for r in rows}) == writers
        assert sorted(r["n"] for r in rows) == list(range(writers))
        assert {r["id"] for r in inserted} == {r["id"] for r in rows}

    def test_rename_during_inserts_loses_nothing(self, engine, project_id, items):
        """Rows written before the rename carry b, rows written after still say a."""
        engine.add_column(project_id, "items", "a", "text")
        start = threading.Barrier(6)

        def insert_many(worker):
            start.wait()
            for n in range(10):
                engine.insert_row(project_id, "items", {"a": f"{worker}-{n}"})

        def rename():
            start.wait()
            engine.rename_or_retype_column(project_id, "items", "a", new_name="b")

        with ThreadPoolExecutor(max_workers=6) as executor:
            futures = [executor.submit(insert_many, w) for w in range(5)]
            futures.append(executor.submit(rename))
            for future in as_completed(futures):
                future.result()

        rows = engine.list_rows(project_id, "items")
        assert len(rows) == 50
        assert all(("a" in r) != ("b" in r) for r in rows)
        values = sorted(r.get("a", r.get("b")) for r in rows)
        assert values == sorted(f"{w}-{n}" for w in range(5) for n in range(10))
        assert [c["name"] for c in engine.get_table(project_id, "items")["columns"]] == ["id", "b"]
