"""Seed a demo tenant: one branch policy, a gate device, a few learners and staff.

Learner badges are written to ./badges so they can be printed and scanned right away.
"""

from __future__ import annotations

import importlib
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.attendance_sync.attendance_sync.container import build_container
from src.attendance_sync.attendance_sync.core.enums import SubjectType
from src.attendance_sync.attendance_sync.subjects.model import Subject

DEMO_TENANT = "demo"
DEMO_BRANCH = "main-campus"

DEMO_LEARNERS = [
    ("L1001", "Nguyen Minh An", "Grade 3", "3A", "4821"),
    ("L1002", "Tran Bao Chau", "Grade 3", "3A", "5930"),
    ("L1003", "Le Gia Huy", "Grade 4", "4B", None),
]
DEMO_STAFF = [
    ("S2001", "Pham Thu Ha", "7315"),
    ("S2002", "Vo Quoc Dung", None),
]


def main() -> None:
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    db_config = dict(settings.DB_CONFIG)
    c = build_container(db_config=db_config, qr_token_secret=settings.QR_TOKEN_SECRET)

    policy = c.policy_service.save(
        {"branch_id": DEMO_BRANCH, "grace_minutes": 10, "late_threshold_minutes": 60, "anti_passback_minutes": 2},
        tenant_id=DEMO_TENANT,
    )
    device = c.device_service.register(
        {"branch_id": DEMO_BRANCH, "device_code": "gate-main", "device_name": "Main gate", "location_label": "Front"},
        tenant_id=DEMO_TENANT,
    )

    for user_id, name, grade, class_name, pin in DEMO_LEARNERS:
        c.subjects_repo.upsert(
            Subject(
                user_id=user_id,
                tenant_id=DEMO_TENANT,
                branch_id=DEMO_BRANCH,
                subject_type=SubjectType.LEARNER,
                display_name=name,
                grade=grade,
                class_name=class_name,
                pin_digest=c.tokens.pin_digest(pin) if pin else None,
            )
        )
    for user_id, name, pin in DEMO_STAFF:
        c.subjects_repo.upsert(
            Subject(
                user_id=user_id,
                tenant_id=DEMO_TENANT,
                branch_id=DEMO_BRANCH,
                subject_type=SubjectType.STAFF,
                display_name=name,
                pin_digest=c.tokens.pin_digest(pin) if pin else None,
            )
        )

    badges = REPO_ROOT / "badges"
    badges.mkdir(exist_ok=True)
    for user_id, *_ in DEMO_LEARNERS:
        (badges / f"{user_id}.png").write_bytes(c.subject_service.badge_png(tenant_id=DEMO_TENANT, user_id=user_id))

    print(
        "OK: Seeded database -> "
        f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')} "
        f"(tenant={DEMO_TENANT}, policy #{policy.policy_id}, device #{device.device_id}, "
        f"subjects={len(DEMO_LEARNERS) + len(DEMO_STAFF)}, badges in {badges})"
    )


if __name__ == "__main__":
    main()
