from __future__ import annotations

import unittest
from unittest.mock import patch

from checklist_scheduler.services.schema_guard import REQUIRED_TABLE_COLUMNS, verify_runtime_schema


class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):  # type: ignore[no-untyped-def]
        return self._value


class _FakeConnection:
    def __init__(self, version_value):
        self._version_value = version_value

    def __enter__(self):  # type: ignore[no-untyped-def]
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False

    def execute(self, _statement):  # type: ignore[no-untyped-def]
        return _FakeResult(self._version_value)


class _FakeEngine:
    def __init__(self, version_value):
        self._version_value = version_value

    def connect(self):  # type: ignore[no-untyped-def]
        return _FakeConnection(self._version_value)


class _FakeInspector:
    def __init__(self, *, columns_by_table: dict[str, set[str]], enums: list[dict[str, object]]):
        self._columns_by_table = columns_by_table
        self._enums = enums

    def get_columns(self, table_name: str):  # type: ignore[no-untyped-def]
        columns = self._columns_by_table[table_name]
        return [{"name": item} for item in columns]

    def get_enums(self):  # type: ignore[no-untyped-def]
        return self._enums


class SchemaGuardTests(unittest.TestCase):
    def test_verify_runtime_schema_ok_when_required_columns_exist(self) -> None:
        columns_by_table = {table: set(columns) | {"extra_column"} for table, columns in REQUIRED_TABLE_COLUMNS.items()}
        fake_inspector = _FakeInspector(
            columns_by_table=columns_by_table,
            enums=[{"name": "audit_actor_type", "labels": ["ADMIN", "EMPLOYEE", "SYSTEM"]}],
        )
        fake_engine = _FakeEngine("0001_initial")

        with patch("checklist_scheduler.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(fake_engine)  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.issues, [])
        self.assertEqual(result.warnings, [])

    def test_verify_runtime_schema_reports_missing_columns(self) -> None:
        columns_by_table = {table: set(columns) for table, columns in REQUIRED_TABLE_COLUMNS.items()}
        columns_by_table["checklist_assignments"] = columns_by_table["checklist_assignments"] - {"assignment_key"}
        columns_by_table["checklists"] = columns_by_table["checklists"] - {"backup_employee_ids", "specific_date"}
        fake_inspector = _FakeInspector(
            columns_by_table=columns_by_table,
            enums=[{"name": "audit_actor_type", "labels": ["ADMIN", "EMPLOYEE"]}],
        )
        fake_engine = _FakeEngine("")

        with patch("checklist_scheduler.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(fake_engine)  # type: ignore[arg-type]

        self.assertFalse(result.ok)
        self.assertIn("MISSING_COLUMNS:checklist_assignments:assignment_key", result.issues)
        self.assertIn("MISSING_COLUMNS:checklists:backup_employee_ids,specific_date", result.issues)
        self.assertIn("MISSING_ENUM_VALUES:audit_actor_type:SYSTEM", result.issues)
        self.assertIn("ALEMBIC_VERSION_EMPTY", result.issues)

    def test_missing_enum_is_only_a_warning(self) -> None:
        fake_inspector = _FakeInspector(
            columns_by_table={table: set(columns) for table, columns in REQUIRED_TABLE_COLUMNS.items()},
            enums=[],
        )

        with patch("checklist_scheduler.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine("0001_initial"))  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.warnings, ["ENUM_NOT_FOUND:audit_actor_type"])
        self.assertEqual(result.to_dict()["warning_count"], 1)


if __name__ == "__main__":
    unittest.main()
