"""Schema-flexible table engine.

A table is one document holding an ordered column list and an
insertion-ordered list of rows. Rows are open records (column name ->
JSON value); columns are declarations with opaque type labels.

Concurrency model:
- every mutation runs under the table's lock from TableLockManager
- under the lock the current document is re-read, a new document is
  built, and the result is written back with a single `put`
- readers never lock; they see either the old or the new document

So a column rename touches every row or none, and two concurrent inserts
can never lose each other. Change events are published after the lock is
released.
"""

import uuid
from typing import Any, Callable, TypeVar, Union

import structlog

from tenantdb.database import CATALOG_LOCK, TABLES, DocumentStore, TableLockManager
from tenantdb.errors import ConflictError, NotFoundError, ValidationError
from tenantdb.realtime import DELETE, INSERT, UPDATE, ChangeBus
from tenantdb.tenants import TenantStore, utcnow_iso

logger = structlog.get_logger()

JSONValue = Union[str, int, float, bool, None, dict[str, Any], list[Any]]
Row = dict[str, JSONValue]

PRIMARY_KEY = "id"
PRIMARY_KEY_TYPE = "uuid"

T = TypeVar("T")


def primary_column() -> dict[str, Any]:
    return {"name": PRIMARY_KEY, "type": PRIMARY_KEY_TYPE, "primary": True}


def rename_row_key(row: Row, old_name: str, new_name: str) -> Row:
    """
    Move `old_name` to `new_name`, keeping the value and the key position.

    Rows without `old_name` are returned unchanged. A stray undeclared
    `new_name` field is overwritten by the renamed value.
    """
    if old_name not in row:
        return row

    renamed: Row = {}
    for key, value in row.items():
        if key == old_name:
            renamed[new_name] = value
        elif key != new_name:
            renamed[key] = value
    return renamed


def drop_row_key(row: Row, name: str) -> Row:
    return {key: value for key, value in row.items() if key != name}


def _find_column(table: dict[str, Any], name: str) -> dict[str, Any] | None:
    for column in table["columns"]:
        if column["name"] == name:
            return column
    return None


def _find_row_index(table: dict[str, Any], row_id: str) -> int:
    for index, row in enumerate(table["rows"]):
        if row.get(PRIMARY_KEY) == row_id:
            return index
    return -1


def _require_fields(fields: Any) -> dict[str, Any]:
    if not isinstance(fields, dict):
        raise ValidationError("Row body must be a JSON object")
    return fields


class TableEngine:
    """Schema and row storage for every project's tables."""

    def __init__(
        self,
        store: DocumentStore,
        tenants: TenantStore,
        lock_manager: TableLockManager,
        change_bus: ChangeBus,
    ) -> None:
        self.store = store
        self.tenants = tenants
        self.lock_manager = lock_manager
        self.change_bus = change_bus

    # ========================================
    # Lookup
    # ========================================

    def _find_table(self, project_id: str, table_ref: str) -> dict[str, Any] | None:
        """Resolve a table by id, falling back to its name within the project."""
        table = self.store.get(TABLES, table_ref)
        if table is not None and table["project_id"] == project_id:
            return table

        for candidate in self.store.scan(TABLES, project_id=project_id):
            if candidate["name"] == table_ref:
                return candidate
        return None

    def _require_table(self, project_id: str, table_ref: str) -> dict[str, Any]:
        table = self._find_table(project_id, table_ref)
        if table is None:
            raise NotFoundError(
                "Table not found",
                project_id=project_id,
                table=table_ref,
            )
        return table

    def get_table(self, project_id: str, table_ref: str) -> dict[str, Any]:
        self.tenants.get_project(project_id)
        return self._require_table(project_id, table_ref)

    def list_tables(self, project_id: str) -> list[dict[str, Any]]:
        self.tenants.get_project(project_id)
        return self.store.scan(TABLES, project_id=project_id)

    def count_tables(self) -> int:
        return self.store.count(TABLES)

    # ========================================
    # Table lifecycle
    # ========================================

    def create_table(self, project_id: str, name: str | None) -> dict[str, Any]:
        """Create an empty table whose only column is the primary key."""
        self.tenants.get_project(project_id)

        if not name or not name.strip():
            raise ValidationError("Table name is required")

        with self.lock_manager.acquire(project_id, CATALOG_LOCK):
            # The project may have started deleting while we waited
            self.tenants.get_project(project_id)
            existing = {t["name"] for t in self.store.scan(TABLES, project_id=project_id)}
            if name in existing:
                raise ConflictError(
                    f"Table {name} already exists",
                    project_id=project_id,
                    table=name,
                )

            table = {
                "id": str(uuid.uuid4()),
                "project_id": project_id,
                "name": name,
                "columns": [primary_column()],
                "rows": [],
                "created_at": utcnow_iso(),
            }
            self.store.put(TABLES, table["id"], table, project_id=project_id)

        logger.info("table_created", project_id=project_id, table_id=table["id"], table=name)
        return table

    def drop_table(self, project_id: str, table_ref: str) -> None:
        """Remove a table and all its rows."""
        self.tenants.get_project(project_id)

        with self.lock_manager.acquire(project_id, CATALOG_LOCK):
            table = self._require_table(project_id, table_ref)
            with self.lock_manager.acquire(project_id, table["id"]):
                self.store.delete(TABLES, table["id"])
            self.lock_manager.remove_lock(project_id, table["id"])

        logger.info(
            "table_dropped",
            project_id=project_id,
            table_id=table["id"],
            table=table["name"],
            row_count=len(table["rows"]),
        )

    # ========================================
    # Serialized read-modify-write
    # ========================================

    def _mutate(
        self,
        project_id: str,
        table_ref: str,
        mutation: Callable[[dict[str, Any]], T],
    ) -> tuple[T, dict[str, Any]]:
        """
        Apply `mutation` to the latest table document under the table lock.

        `mutation` edits the document it is given and returns a result;
        if it raises, nothing is written.
        """
        self.tenants.get_project(project_id)
        table_id = self._require_table(project_id, table_ref)["id"]

        with self.lock_manager.acquire(project_id, table_id):
            table = self.store.get(TABLES, table_id)
            if table is None:
                # Dropped while we were waiting for the lock
                raise NotFoundError("Table not found", project_id=project_id, table=table_ref)

            result = mutation(table)
            self.store.put(TABLES, table_id, table, project_id=project_id)

        return result, table

    # ========================================
    # Columns
    # ========================================

    def add_column(
        self,
        project_id: str,
        table_ref: str,
        name: str | None,
        column_type: str | None,
    ) -> dict[str, Any]:
        """Append a column. Existing rows are not backfilled."""
        if not name or not column_type:
            raise ValidationError("Column name and type are required")

        def mutation(table: dict[str, Any]) -> None:
            if _find_column(table, name) is not None:
                raise ConflictError(
                    f"Column {name} already exists",
                    table=table["name"],
                    column=name,
                )
            table["columns"] = [*table["columns"], {"name": name, "type": column_type}]

        _, table = self._mutate(project_id, table_ref, mutation)

        logger.info(
            "column_added",
            project_id=project_id,
            table=table["name"],
            column=name,
            column_type=column_type,
        )
        return table

    def rename_or_retype_column(
        self,
        project_id: str,
        table_ref: str,
        old_name: str,
        new_name: str | None = None,
        new_type: str | None = None,
    ) -> dict[str, Any]:
        """
        Rename and/or retype a column.

        A rename moves the value under `old_name` to `new_name` in every row
        that has it, in the same write as the schema change.
        """

        def mutation(table: dict[str, Any]) -> int:
            column = _find_column(table, old_name)
            if column is None:
                raise NotFoundError(
                    f"Column {old_name} not found",
                    table=table["name"],
                    column=old_name,
                )
            if column.get("primary"):
                raise ValidationError("The primary key column cannot be changed")
            if not new_name and not new_type:
                raise ValidationError("Provide a new name or a new type")

            renaming = bool(new_name) and new_name != old_name
            if renaming and _find_column(table, new_name) is not None:
                raise ConflictError(
                    f"Column {new_name} already exists",
                    table=table["name"],
                    column=new_name,
                )

            updated = dict(column)
            if renaming:
                updated["name"] = new_name
            if new_type:
                updated["type"] = new_type
            table["columns"] = [
                updated if c["name"] == old_name else c for c in table["columns"]
            ]

            if not renaming:
                return 0
            migrated = sum(1 for row in table["rows"] if old_name in row)
            table["rows"] = [rename_row_key(row, old_name, new_name) for row in table["rows"]]
            return migrated

        migrated, table = self._mutate(project_id, table_ref, mutation)

        logger.info(
            "column_altered",
            project_id=project_id,
            table=table["name"],
            column=old_name,
            new_name=new_name,
            new_type=new_type,
            rows_migrated=migrated,
        )
        return table

    def delete_column(self, project_id: str, table_ref: str, name: str) -> dict[str, Any]:
        """Remove a column and its value from every row."""

        def mutation(table: dict[str, Any]) -> None:
            column = _find_column(table, name)
            if column is None:
                raise NotFoundError(
                    f"Column {name} not found",
                    table=table["name"],
                    column=name,
                )
            if column.get("primary"):
                raise ValidationError("The primary key column cannot be deleted")

            table["columns"] = [c for c in table["columns"] if c["name"] != name]
            table["rows"] = [drop_row_key(row, name) for row in table["rows"]]

        _, table = self._mutate(project_id, table_ref, mutation)

        logger.info("column_deleted", project_id=project_id, table=table["name"], column=name)
        return table

    # ========================================
    # Rows
    # ========================================

    def list_rows(
        self,
        project_id: str,
        table_ref: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Row]:
        """Full scan in insertion order, optionally paginated."""
        rows = self.get_table(project_id, table_ref)["rows"]
        if limit is None:
            return rows[offset:]
        return rows[offset:offset + limit]

    def insert_row(self, project_id: str, table_ref: str, fields: Any) -> Row:
        """Append a row. The engine always generates the primary key."""
        fields = _require_fields(fields)

        def mutation(table: dict[str, Any]) -> Row:
            taken = {row.get(PRIMARY_KEY) for row in table["rows"]}
            row_id = str(uuid.uuid4())
            while row_id in taken:
                row_id = str(uuid.uuid4())

            row: Row = {PRIMARY_KEY: row_id}
            row.update((k, v) for k, v in fields.items() if k != PRIMARY_KEY)
            table["rows"] = [*table["rows"], row]
            return row

        row, table = self._mutate(project_id, table_ref, mutation)

        logger.info("row_inserted", project_id=project_id, table=table["name"], row_id=row[PRIMARY_KEY])
        self.change_bus.publish(project_id, table["name"], INSERT, {"record": row})
        return row

    def update_row(self, project_id: str, table_ref: str, row_id: str, patch: Any) -> Row:
        """Shallow-merge `patch` into a row. A primary key in the patch is ignored."""
        patch = _require_fields(patch)

        def mutation(table: dict[str, Any]) -> Row:
            index = _find_row_index(table, row_id)
            if index == -1:
                raise NotFoundError("Row not found", table=table["name"], row_id=row_id)

            row = dict(table["rows"][index])
            row.update((k, v) for k, v in patch.items() if k != PRIMARY_KEY)
            rows = list(table["rows"])
            rows[index] = row
            table["rows"] = rows
            return row

        row, table = self._mutate(project_id, table_ref, mutation)

        logger.info("row_updated", project_id=project_id, table=table["name"], row_id=row_id)
        self.change_bus.publish(project_id, table["name"], UPDATE, {"record": row})
        return row

    def delete_row(self, project_id: str, table_ref: str, row_id: str) -> Row:
        """Remove a row and return it."""

        def mutation(table: dict[str, Any]) -> Row:
            index = _find_row_index(table, row_id)
            if index == -1:
                raise NotFoundError("Row not found", table=table["name"], row_id=row_id)

            rows = list(table["rows"])
            removed = rows.pop(index)
            table["rows"] = rows
            return removed

        removed, table = self._mutate(project_id, table_ref, mutation)

        logger.info("row_deleted", project_id=project_id, table=table["name"], row_id=row_id)
        self.change_bus.publish(project_id, table["name"], DELETE, {"record": removed})
        return removed
