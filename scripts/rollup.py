"""Recompute every summary of a branch for one day (end-of-day job).

Usage: python scripts/rollup.py <tenant_id> <branch_id> [YYYY-MM-DD] [--week]

With --week, print per-subject totals for the Monday-to-Sunday week containing the date.
"""

from __future__ import annotations

import argparse
import importlib
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.attendance_sync.attendance_sync.common.datetime_utils import now_local, parse_iso_date
from src.attendance_sync.attendance_sync.common.logging import configure_logging
from src.attendance_sync.attendance_sync.container import build_container


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("tenant_id")
    parser.add_argument("branch_id")
    parser.add_argument("date", nargs="?", help="defaults to today")
    parser.add_argument("--week", action="store_true", help="report the week containing the date")
    args = parser.parse_args()

    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"), getattr(settings, "LOG_FILE", None))
    c = build_container(db_config=dict(settings.DB_CONFIG), qr_token_secret=settings.QR_TOKEN_SECRET)

    now = now_local()
    work_date = parse_iso_date(args.date) if args.date else now.date()
    if args.week:
        weekly = c.summary_service.weekly_rollup(tenant_id=args.tenant_id, branch_id=args.branch_id, week_of=work_date)
        start = weekly[0].week_start.isoformat() if weekly else work_date.isoformat()
        print(f"OK: {args.branch_id} week of {start} -> {len(weekly)} subjects")
        for w in weekly:
            print(
                f"  {w.subject_user_id} present={w.days_present} absent={w.days_absent} late={w.days_late} "
                f"late_minutes={w.total_late_minutes} missing_checkouts={w.missing_checkouts}"
            )
        return

    summaries = c.summary_service.rollup(tenant_id=args.tenant_id, branch_id=args.branch_id, work_date=work_date, now=now)

    flagged = [s for s in summaries if s.is_exception]
    print(f"OK: {args.branch_id} {work_date.isoformat()} -> {len(summaries)} summaries, {len(flagged)} exceptions")
    for s in flagged:
        print(f"  #{s.summary_id} {s.subject_user_id} {s.status.value} [{s.flags.primary().value}]")


if __name__ == "__main__":
    main()
