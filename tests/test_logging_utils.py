from __future__ import annotations

from datetime import date
import json
import logging
import unittest

from checklist_scheduler.logging_utils import JsonFormatter


class JsonFormatterTests(unittest.TestCase):
    def test_extra_fields_are_flattened_and_dates_serialized(self) -> None:
        record = logging.LogRecord(
            name="checklist_scheduler.generator",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="assignment_created",
            args=(),
            exc_info=None,
        )
        record.org = "acme"
        record.date = date(2024, 6, 3)
        record.employee_ids = {"E2", "E1"}

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["message"], "assignment_created")
        self.assertEqual(payload["level"], "INFO")
        self.assertEqual(payload["logger"], "checklist_scheduler.generator")
        self.assertEqual(payload["org"], "acme")
        self.assertEqual(payload["date"], "2024-06-03")
        self.assertEqual(json.loads(payload["employee_ids"]), ["E1", "E2"])


if __name__ == "__main__":
    unittest.main()
