from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .class_register.mysql_class_register_repository import MySQLClassRegisterRepository
from .class_register.repository import ClassRegisterRepository
from .class_register.service import ClassRegisterService
from .database.connection import DBConfig, DatabaseConnection
from .devices.mysql_device_repository import MySQLDeviceRepository
from .devices.repository import DeviceRepository
from .devices.service import DeviceService
from .early_leave.mysql_early_leave_repository import MySQLEarlyLeaveRepository
from .early_leave.repository import EarlyLeaveRepository
from .early_leave.service import EarlyLeaveService
from .events.mysql_event_repository import MySQLEventRepository
from .events.repository import EventRepository
from .events.service import EventService
from .gate.service import KioskScanService
from .policies.engine import PolicyEngine
from .policies.factory import StatusStrategyFactory
from .policies.mysql_policy_repository import MySQLPolicyRepository
from .policies.repository import PolicyRepository
from .policies.service import PolicyService
from .review.service import ExceptionReviewService
from .subjects.mysql_subject_repository import MySQLSubjectRepository
from .subjects.repository import SubjectRepository
from .subjects.service import SubjectService
from .summaries.mysql_summary_repository import MySQLSummaryRepository
from .summaries.repository import SummaryRepository
from .summaries.service import SummaryService
from .sync.service import SyncService
from .tokens.service import QrTokenService


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    events_repo: EventRepository
    policies_repo: PolicyRepository
    summaries_repo: SummaryRepository
    subjects_repo: SubjectRepository
    devices_repo: DeviceRepository
    early_leave_repo: EarlyLeaveRepository
    class_registers_repo: ClassRegisterRepository

    tokens: QrTokenService
    subject_service: SubjectService
    event_service: EventService
    policy_service: PolicyService
    summary_service: SummaryService
    review_service: ExceptionReviewService
    device_service: DeviceService
    early_leave_service: EarlyLeaveService
    class_register_service: ClassRegisterService
    scan_service: KioskScanService
    sync_service: SyncService


def wire_container(
    *,
    events_repo: EventRepository,
    policies_repo: PolicyRepository,
    summaries_repo: SummaryRepository,
    subjects_repo: SubjectRepository,
    devices_repo: DeviceRepository,
    early_leave_repo: EarlyLeaveRepository,
    class_registers_repo: ClassRegisterRepository,
    qr_token_secret: str,
    conn: Optional[DatabaseConnection] = None,
) -> Container:
    """Build services over any repository implementation (MySQL in production, fakes in tests)."""
    tokens = QrTokenService(qr_token_secret)
    subject_service = SubjectService(subjects_repo, tokens)
    event_service = EventService(events_repo, subject_service)
    policy_service = PolicyService(policies_repo)
    summary_service = SummaryService(
        events_repo,
        summaries_repo,
        policy_service,
        subjects_repo,
        engine=PolicyEngine(StatusStrategyFactory()),
    )
    review_service = ExceptionReviewService(summaries_repo, events_repo, summary_service)
    device_service = DeviceService(devices_repo)
    early_leave_service = EarlyLeaveService(early_leave_repo, subject_service)
    class_register_service = ClassRegisterService(class_registers_repo, subject_service, event_service, summary_service)
    scan_service = KioskScanService(
        devices=device_service,
        subjects=subject_service,
        events=event_service,
        policies=policy_service,
        summaries=summary_service,
        early_leave=early_leave_service,
    )
    sync_service = SyncService(
        events=event_service,
        summaries=summary_service,
        devices=device_service,
        policies=policy_service,
    )

    return Container(
        conn=conn,
        events_repo=events_repo,
        policies_repo=policies_repo,
        summaries_repo=summaries_repo,
        subjects_repo=subjects_repo,
        devices_repo=devices_repo,
        early_leave_repo=early_leave_repo,
        class_registers_repo=class_registers_repo,
        tokens=tokens,
        subject_service=subject_service,
        event_service=event_service,
        policy_service=policy_service,
        summary_service=summary_service,
        review_service=review_service,
        device_service=device_service,
        early_leave_service=early_leave_service,
        class_register_service=class_register_service,
        scan_service=scan_service,
        sync_service=sync_service,
    )


def build_container(*, db_config: dict, qr_token_secret: str) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))

    return wire_container(
        events_repo=MySQLEventRepository(conn),
        policies_repo=MySQLPolicyRepository(conn),
        summaries_repo=MySQLSummaryRepository(conn),
        subjects_repo=MySQLSubjectRepository(conn),
        devices_repo=MySQLDeviceRepository(conn),
        early_leave_repo=MySQLEarlyLeaveRepository(conn),
        class_registers_repo=MySQLClassRegisterRepository(conn),
        qr_token_secret=qr_token_secret,
        conn=conn,
    )
