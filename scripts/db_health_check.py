#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, text


EXPECTED_HEAD = "0001_initial"
REQUIRED_TABLES = [
    "employees",
    "attendance_days",
    "checklists",
    "checklist_assignments",
    "generation_runs",
    "audit_logs",
]


def load_env_if_exists() -> None:
    env_file = Path(".env")
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def run() -> dict:
    load_env_if_exists()
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL not found (.env or env vars).")

    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})

        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing else "ok", {"tables": missing})

        if "checklist_assignments" in tables:
            # At most one record per (checklist, employee, day) is expected.
            duplicate_assignments = conn.execute(
                text(
                    """
                    select org, checklist_id, employee_id, day_date, count(*)
                    from checklist_assignments
                    group by org, checklist_id, employee_id, day_date
                    having count(*) > 1
                    limit 50
                    """
                )
            ).fetchall()
            add(
                "duplicate_assignments",
                "fail" if duplicate_assignments else "ok",
                {"rows": [[str(value) for value in row] for row in duplicate_assignments]},
            )

            unnamed_backups = conn.execute(
                text(
                    """
                    select id
                    from checklist_assignments
                    where is_backup_assignment = true and original_employee_id is null
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "backup_without_original",
                "fail" if unnamed_backups else "ok",
                {"sample_ids": [row[0] for row in unnamed_backups]},
            )

            if "checklists" in tables:
                orphan_assignments = conn.execute(
                    text(
                        """
                        select a.id
                        from checklist_assignments a
                        left join checklists c on c.id = a.checklist_id
                        where c.id is null
                        limit 20
                        """
                    )
                ).fetchall()
                add(
                    "assignment_orphan_checklist",
                    "warn" if orphan_assignments else "ok",
                    {"sample_ids": [row[0] for row in orphan_assignments]},
                )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
