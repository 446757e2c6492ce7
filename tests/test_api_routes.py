from __future__ import annotations

import unittest
from collections.abc import Generator
from datetime import date
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from checklist_scheduler.db import get_db
from checklist_scheduler.main import app
from checklist_scheduler.models import AttendanceStatus, AuditLog
from checklist_scheduler.security import create_access_token, require_actor
from checklist_scheduler.settings import Settings

from scheduler_fixtures import ADMIN, ORG, add_checklist, add_employee, all_assignments, employee_actor, make_session, set_status

DAY = date(2024, 6, 3)


def _override_get_db(db):
    def _override() -> Generator[object, None, None]:
        yield db

    return _override


class ChecklistRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        add_employee(self.db, "E1", "Alice")
        add_employee(self.db, "E2", "Bob")
        self.checklist = add_checklist(self.db, assigned=["E1"], backups=["E2"])
        app.dependency_overrides[get_db] = _override_get_db(self.db)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.db.close()

    def _act_as(self, actor) -> None:  # type: ignore[no-untyped-def]
        app.dependency_overrides[require_actor] = lambda: actor

    def test_manual_generate_forbidden_for_employee(self) -> None:
        set_status(self.db, "E1", DAY, AttendanceStatus.CHECKED_IN)
        self._act_as(employee_actor("E1"))

        response = self.client.post(f"/api/orgs/{ORG}/assignments/generate", json={"day_date": DAY.isoformat()})

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")
        self.assertEqual(all_assignments(self.db), [])

    def test_manual_generate_by_admin(self) -> None:
        set_status(self.db, "E1", DAY, AttendanceStatus.CHECKED_IN)
        self._act_as(ADMIN)

        response = self.client.post(f"/api/orgs/{ORG}/assignments/generate", json={"day_date": DAY.isoformat()})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["type"], "manual_generation")
        self.assertEqual(body["total_generated"], 1)
        self.assertEqual(body["date"], "2024-06-03")
        self.assertIsNotNone(
            self.db.query(AuditLog).filter(AuditLog.action == "ASSIGNMENTS_MANUALLY_GENERATED").one_or_none()
        )

    def test_check_in_event_generates_for_self_only(self) -> None:
        set_status(self.db, "E1", DAY, AttendanceStatus.CHECKED_IN)
        self._act_as(employee_actor("E2"))

        forbidden = self.client.post(
            f"/api/orgs/{ORG}/attendance/check-in-events",
            json={"employee_id": "E1", "day_date": DAY.isoformat()},
        )
        self.assertEqual(forbidden.status_code, 403)

        self._act_as(employee_actor("E1"))
        response = self.client.post(
            f"/api/orgs/{ORG}/attendance/check-in-events",
            json={"employee_id": "E1", "day_date": DAY.isoformat()},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["primary_generated"], 1)
        self.assertFalse(response.json()["already_exists"])

    def test_leave_event_reassigns_to_backup(self) -> None:
        set_status(self.db, "E1", DAY, AttendanceStatus.ON_LEAVE)
        set_status(self.db, "E2", DAY, AttendanceStatus.CHECKED_IN)
        self._act_as(ADMIN)

        response = self.client.post(
            f"/api/orgs/{ORG}/attendance/leave-events",
            json={"employee_id": "E1", "day_date": DAY.isoformat(), "kind": "declared"},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["kind"], "declared")
        self.assertEqual(body["reassigned_count"], 1)
        self.assertEqual([item.employee_id for item in all_assignments(self.db)], ["E2"])

    def test_create_checklist_validation_error_envelope(self) -> None:
        self._act_as(ADMIN)

        response = self.client.post(
            f"/api/orgs/{ORG}/checklists",
            json={"title": "ab", "assigned_employee_ids": ["E1"]},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_create_and_list_checklists(self) -> None:
        self._act_as(ADMIN)

        created = self.client.post(
            f"/api/orgs/{ORG}/checklists",
            json={
                "title": "Weekly fridge check",
                "assigned_employee_ids": ["E2"],
                "recurrence": {"type": "weekly", "day_of_week": 3},
            },
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["recurrence_label"], "Weekly (Wednesday)")

        listed = self.client.get(f"/api/orgs/{ORG}/checklists")
        self.assertEqual(listed.status_code, 200)
        self.assertEqual([item["title"] for item in listed.json()], ["Weekly fridge check", "Open the store"])

    def test_unknown_checklist_is_404(self) -> None:
        self._act_as(ADMIN)

        response = self.client.delete(f"/api/orgs/{ORG}/checklists/999")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "NOT_FOUND")

    def test_invalid_org_key_is_rejected(self) -> None:
        self._act_as(ADMIN)

        response = self.client.get("/api/orgs/undefined/checklists")

        self.assertEqual(response.status_code, 422)

    def test_completion_and_employee_scoped_listing(self) -> None:
        self._act_as(employee_actor("E1"))

        response = self.client.put(
            f"/api/orgs/{ORG}/assignments/completion",
            json={
                "checklist_id": self.checklist.id,
                "employee_id": "E1",
                "day_date": DAY.isoformat(),
                "completed": True,
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["completed"])

        # Employees only ever see their own records, whatever filter they send.
        listed = self.client.get(f"/api/orgs/{ORG}/assignments", params={"employee_id": "E2"})
        self.assertEqual([item["employee_id"] for item in listed.json()], ["E1"])

    def test_completion_reason_over_column_width_is_rejected(self) -> None:
        self._act_as(employee_actor("E1"))

        response = self.client.put(
            f"/api/orgs/{ORG}/assignments/completion",
            json={
                "checklist_id": self.checklist.id,
                "employee_id": "E1",
                "day_date": DAY.isoformat(),
                "completed": False,
                "reason": "x" * 501,
            },
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")
        self.assertEqual(all_assignments(self.db), [])

    def test_completion_requires_employee_id(self) -> None:
        self._act_as(ADMIN)

        response = self.client.put(
            f"/api/orgs/{ORG}/assignments/completion",
            json={"checklist_id": self.checklist.id, "employee_id": "", "day_date": DAY.isoformat(), "completed": True},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_store_outage_maps_to_503_envelope(self) -> None:
        self._act_as(ADMIN)

        with patch.object(self.db, "scalars", side_effect=OperationalError("SELECT", {}, Exception("down"))):
            response = self.client.get(f"/api/orgs/{ORG}/checklists")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"]["code"], "STORE_UNAVAILABLE")

    def test_calendar_month_bounds(self) -> None:
        self._act_as(ADMIN)

        bad = self.client.get(f"/api/orgs/{ORG}/calendar", params={"month": 13, "year": 2024})
        self.assertEqual(bad.status_code, 422)

        good = self.client.get(f"/api/orgs/{ORG}/calendar", params={"month": 6, "year": 2024})
        self.assertEqual(good.status_code, 200)
        self.assertEqual(good.json()["month_stats"]["total_assignments"], 0)

    def test_dashboard_differs_by_role(self) -> None:
        self._act_as(ADMIN)
        admin_view = self.client.get(f"/api/orgs/{ORG}/dashboard", params={"day_date": DAY.isoformat()})
        self.assertTrue(admin_view.json()["can_manual_generate"])

        self._act_as(employee_actor("E1"))
        employee_view = self.client.get(f"/api/orgs/{ORG}/dashboard", params={"day_date": DAY.isoformat()})
        self.assertFalse(employee_view.json()["can_manual_generate"])

    def test_health_reports_schema_guard_not_run(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertIn("SCHEMA_GUARD_NOT_RUN", response.json()["schema_guard"]["issues"])


class TokenAuthTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        app.dependency_overrides[get_db] = _override_get_db(self.db)
        self.client = TestClient(app)
        self.settings = Settings(jwt_secret="unit-test-secret-with-enough-length")

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.db.close()

    def test_missing_token_is_401(self) -> None:
        response = self.client.get(f"/api/orgs/{ORG}/checklists")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_TOKEN")

    def test_token_scoped_to_other_org_is_forbidden(self) -> None:
        with patch("checklist_scheduler.security.get_settings", return_value=self.settings):
            token, _, _ = create_access_token(sub="admin-1", role="admin", org="other-org")
            response = self.client.get(
                f"/api/orgs/{ORG}/checklists",
                headers={"Authorization": f"Bearer {token}"},
            )

        self.assertEqual(response.status_code, 403)

    def test_valid_token_reaches_route(self) -> None:
        with patch("checklist_scheduler.security.get_settings", return_value=self.settings):
            token, expires_in, claims = create_access_token(sub="admin-1", role="admin", name="Ada", org=ORG)
            response = self.client.get(
                f"/api/orgs/{ORG}/checklists",
                headers={"Authorization": f"Bearer {token}"},
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [])
        self.assertEqual(expires_in, self.settings.access_token_minutes * 60)
        self.assertEqual(claims["org"], ORG)


if __name__ == "__main__":
    unittest.main()
