from __future__ import annotations

from datetime import date
import unittest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from checklist_scheduler.errors import AttendanceLookupFailure, TransientStoreError
from checklist_scheduler.models import AttendanceStatus, GenerationSource
from checklist_scheduler.services.assignment_generator import AssignmentGenerator
from checklist_scheduler.services.assignment_store import AssignmentStore
from checklist_scheduler.services.attendance_gateway import SqlAttendanceGateway, SqlEmployeeDirectory
from checklist_scheduler.services.duplicate_guard import KeyedMutexTable

from scheduler_fixtures import ORG, add_checklist, add_employee, all_assignments, make_session, set_status

DAY = date(2024, 6, 3)


def _connection_lost(statement: str = "SELECT") -> OperationalError:
    return OperationalError(statement, {}, Exception("server closed the connection unexpectedly"))


class AssignmentStoreFailureTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        add_employee(self.db, "E1", "Alice")
        self.checklist = add_checklist(self.db, assigned=["E1"])
        self.store = AssignmentStore(self.db, ORG)

    def tearDown(self) -> None:
        self.db.close()

    def test_failed_read_rolls_back_and_raises_transient_error(self) -> None:
        with patch.object(self.db, "rollback", wraps=self.db.rollback) as rollback, patch.object(
            self.db, "scalars", side_effect=_connection_lost()
        ):
            with self.assertLogs("checklist_scheduler.store", level="WARNING") as captured:
                with self.assertRaises(TransientStoreError) as ctx:
                    self.store.list_assignments(day_date=DAY)

        rollback.assert_called_once_with()
        self.assertIsInstance(ctx.exception.__cause__, OperationalError)
        self.assertEqual(ctx.exception.code, "STORE_UNAVAILABLE")
        self.assertIn("store_call_failed", captured.output[0])

    def test_failed_count_raises_transient_error(self) -> None:
        with patch.object(self.db, "scalar", side_effect=_connection_lost()):
            with self.assertRaises(TransientStoreError):
                self.store.count_assignments(employee_id="E1", day_date=DAY)

    def test_failed_commit_leaves_no_record_and_generator_reports_false(self) -> None:
        generator = AssignmentGenerator(
            self.store,
            SqlAttendanceGateway(self.db),
            SqlEmployeeDirectory(self.db),
            locks=KeyedMutexTable(),
        )

        with patch.object(self.db, "commit", side_effect=_connection_lost("INSERT")):
            created = generator.create_single_assignment(
                checklist_id=self.checklist.id,
                checklist_title=self.checklist.title,
                employee_id="E1",
                day_date=DAY,
                generated_by=GenerationSource.CHECK_IN,
            )

        self.assertFalse(created)
        self.assertEqual(all_assignments(self.db), [])


class AttendanceGatewayFailureTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        add_employee(self.db, "E1", "Alice")
        set_status(self.db, "E1", DAY, AttendanceStatus.ON_LEAVE)
        self.gateway = SqlAttendanceGateway(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def test_status_read_failure_raises_lookup_failure(self) -> None:
        with patch.object(self.db, "rollback", wraps=self.db.rollback) as rollback, patch.object(
            self.db, "scalar", side_effect=_connection_lost()
        ):
            with self.assertRaises(AttendanceLookupFailure) as ctx:
                self.gateway.get_status(ORG, "E1", DAY)

        rollback.assert_called_once_with()
        self.assertEqual(ctx.exception.status_code, 502)

    def test_checked_in_read_failure_raises_lookup_failure(self) -> None:
        with patch.object(self.db, "execute", side_effect=_connection_lost()):
            with self.assertRaises(AttendanceLookupFailure):
                self.gateway.get_checked_in_employees(ORG, DAY)

    def test_generator_downgrades_unreadable_attendance(self) -> None:
        generator = AssignmentGenerator(
            AssignmentStore(self.db, ORG),
            self.gateway,
            SqlEmployeeDirectory(self.db),
            locks=KeyedMutexTable(),
        )
        # The stored row says on leave; an unreadable store must not be taken as leave.
        self.assertTrue(generator.is_on_leave("E1", DAY))

        with patch.object(self.db, "scalar", side_effect=_connection_lost()), patch.object(
            self.db, "execute", side_effect=_connection_lost()
        ):
            with self.assertLogs("checklist_scheduler.generator", level="WARNING") as captured:
                self.assertFalse(generator.is_on_leave("E1", DAY))
                self.assertEqual(generator.checked_in_employees(DAY), set())

        self.assertEqual(len(captured.output), 2)
        self.assertTrue(all("attendance_lookup_failed" in line for line in captured.output))


if __name__ == "__main__":
    unittest.main()
