from __future__ import annotations

from datetime import date, datetime, timezone
import unittest

from checklist_scheduler.errors import ValidationError
from checklist_scheduler.models import AttendanceStatus, ChecklistAssignment
from checklist_scheduler.services.calendar_view import build_month_grid, get_dashboard_stats, get_month_view
from checklist_scheduler.services.scheduling import manual_generate

from scheduler_fixtures import ADMIN, ORG, add_checklist, add_employee, make_session, set_status


def _assignment(**values) -> ChecklistAssignment:  # type: ignore[no-untyped-def]
    defaults = {
        "checklist_id": 1,
        "checklist_title": "Open the store",
        "employee_id": "E1",
        "employee_name": "Alice",
        "day_date": date(2024, 6, 3),
        "completed": False,
        "reason": None,
        "completed_at": None,
        "is_backup_assignment": False,
    }
    defaults.update(values)
    return ChecklistAssignment(**defaults)


class MonthGridTests(unittest.TestCase):
    def test_grid_and_stats_from_single_pass(self) -> None:
        assignments = [
            _assignment(completed=True, completed_at=datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc)),
            _assignment(day_date=date(2024, 6, 4), reason="Closed for inventory"),
            _assignment(checklist_id=2, checklist_title="Close the store", employee_id="E2", employee_name="Bob"),
        ]
        employees = [{"id": "E1", "name": "Alice"}, {"id": "E2", "name": "Bob"}, {"id": "E3", "name": "Cem"}]

        per_employee, stats = build_month_grid(assignments, employees)

        self.assertEqual(stats["total_assignments"], 3)
        self.assertEqual(stats["completed_assignments"], 1)
        self.assertEqual(stats["pending_assignments"], 2)
        self.assertAlmostEqual(stats["completion_rate"], 100 / 3)
        self.assertEqual(stats["by_employee"]["E1"]["completion_rate"], 50.0)
        self.assertEqual(stats["by_date"]["2024-06-03"], {"total": 2, "completed": 1})

        alice_days = per_employee["E1"]["checklists"]["1"]["completions"]
        self.assertTrue(alice_days["2024-06-03"]["completed"])
        self.assertEqual(alice_days["2024-06-03"]["completed_at"], "2024-06-03T09:00:00+00:00")
        self.assertEqual(alice_days["2024-06-04"]["reason"], "Closed for inventory")
        self.assertEqual(per_employee["E1"]["daily_stats"]["2024-06-03"], {"total": 1, "completed": 1})
        self.assertEqual(per_employee["E3"]["checklists"], {})

    def test_records_for_departed_employee_use_stored_name(self) -> None:
        per_employee, stats = build_month_grid(
            [_assignment(employee_id="E9", employee_name="Former Staff", is_backup_assignment=True)],
            [{"id": "E1", "name": "Alice"}],
        )

        self.assertEqual(per_employee["E9"]["employee_info"], {"id": "E9", "name": "Former Staff"})
        self.assertTrue(per_employee["E9"]["checklists"]["1"]["completions"]["2024-06-03"]["is_backup"])
        self.assertEqual(stats["by_employee"]["E9"]["employee_name"], "Former Staff")

    def test_empty_month_has_zero_rate(self) -> None:
        _, stats = build_month_grid([], [])
        self.assertEqual(stats["completion_rate"], 0.0)
        self.assertEqual(stats["total_assignments"], 0)


class MonthViewTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        add_employee(self.db, "E1", "Alice")
        add_employee(self.db, "E2", "Bob", is_active=False)
        add_checklist(self.db, assigned=["E1"], recurrence_type="weekly", day_of_week=1)
        set_status(self.db, "E1", date(2024, 6, 3), AttendanceStatus.CHECKED_IN)
        set_status(self.db, "E1", date(2024, 7, 1), AttendanceStatus.CHECKED_IN)
        manual_generate(self.db, org=ORG, actor=ADMIN, day_date=date(2024, 6, 3))
        manual_generate(self.db, org=ORG, actor=ADMIN, day_date=date(2024, 7, 1))

    def tearDown(self) -> None:
        self.db.close()

    def test_month_view_only_reads_requested_month(self) -> None:
        view = get_month_view(self.db, org=ORG, month=6, year=2024)

        self.assertEqual(view["month_stats"]["total_assignments"], 1)
        self.assertEqual([item["id"] for item in view["employees"]], ["E1"])
        self.assertEqual(view["checklists"][0]["recurrence_label"], "Weekly (Monday)")
        self.assertIn("2024-06-03", view["per_employee"]["E1"]["daily_stats"])

    def test_month_out_of_range_is_rejected(self) -> None:
        for month in (0, 13):
            with self.subTest(month=month):
                with self.assertRaises(ValidationError):
                    get_month_view(self.db, org=ORG, month=month, year=2024)

    def test_dashboard_stats_can_be_narrowed_to_one_employee(self) -> None:
        stats = get_dashboard_stats(self.db, org=ORG, day_date=date(2024, 6, 3))
        self.assertEqual(stats, {"total": 1, "completed": 0, "pending": 1, "completion_rate": 0.0})

        other = get_dashboard_stats(self.db, org=ORG, day_date=date(2024, 6, 3), employee_id="E2")
        self.assertEqual(other["total"], 0)


if __name__ == "__main__":
    unittest.main()
