from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, joinedload

from auth import SessionContext
from catalog import _as_uuid
from education import normalize_education_level
from errors import NotFoundError, PermissionDenied, PortalError
from models import (
    DEFAULT_TENANT_ID,
    Application,
    ApplicationDocument,
    ApplicationDraft,
    AuditLog,
    EducationRecordRow,
    Intake,
    Notification,
    Program,
    Student,
    StudentAssignment,
)
from storage import DocumentStore
from wizard import (
    ApplicationFormData,
    EducationRecord,
    ExistingDocument,
    PersonalInfo,
    TOTAL_STEPS,
)

logger = logging.getLogger(__name__)

APPLICATION_SOURCE = "UniDoxia"

APPLICATION_STATUS_OPTIONS: list[dict[str, str]] = [
    {"value": "submitted", "label": "Submitted"},
    {"value": "screening", "label": "Under Review"},
    {"value": "conditional_offer", "label": "Conditional Offer"},
    {"value": "unconditional_offer", "label": "Unconditional Offer"},
    {"value": "cas_loa", "label": "CAS / LOA Issued"},
    {"value": "visa", "label": "Visa Stage"},
    {"value": "enrolled", "label": "Enrolled"},
    {"value": "withdrawn", "label": "Withdrawn"},
    {"value": "rejected", "label": "Rejected"},
]
_STATUS_LABELS = {option["value"]: option["label"] for option in APPLICATION_STATUS_OPTIONS}

REVIEWER_ROLES = ("partner", "staff", "admin")


def application_status_label(status: Optional[str]) -> str:
    if not status:
        return ""
    return _STATUS_LABELS.get(status, status)


def is_application_status_option(value: Optional[str]) -> bool:
    """Statuses a reviewer may set; `draft` and `deferred` are stored but not offered."""
    return value in _STATUS_LABELS


def log_action(db: Session, user_id: Optional[uuid.UUID], action: str, details: dict[str, Any]) -> None:
    db.add(AuditLog(user_id=user_id, action=action, details_json=details))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


# ============================================================
# STUDENT + PREFILL
# ============================================================


def resolve_student(db: Session, ctx: SessionContext, student_id: Optional[str | uuid.UUID] = None) -> Student:
    """The student an application is for: the caller, or the target chosen by an agent/staff member."""
    if student_id is None:
        if ctx.role != "student":
            raise PortalError("Student required", "Select a student before submitting an application.")
        student = db.scalar(
            select(Student).options(joinedload(Student.user)).where(Student.user_id == ctx.user_id)
        )
    else:
        if not ctx.is_agent_flow:
            raise PermissionDenied("Permission denied", "Only agents and staff can apply on behalf of a student.")
        student = db.get(Student, uuid.UUID(str(student_id)))
        if student is not None and ctx.role != "admin" and student.tenant_id != ctx.tenant_id:
            student = None
    if student is None:
        raise NotFoundError("Profile Required", "Please complete your student profile first.")
    return student


def prefill_form(student: Student) -> ApplicationFormData:
    user = student.user
    info = PersonalInfo(
        full_name=(user.full_name if user else "") or "",
        email=(user.email if user else "") or "",
        phone=(user.phone if user else "") or "",
        whatsapp_number=student.whatsapp_number or "",
        date_of_birth=student.date_of_birth.isoformat() if student.date_of_birth else "",
        nationality=student.nationality or "",
        passport_number=student.passport_number or "",
        current_country=student.current_country or "",
        home_address=student.home_address or "",
        correspondent_address=student.correspondent_address or "",
    )
    rows = sorted(student.education_records, key=lambda row: row.start_date, reverse=True)
    records = [
        EducationRecord(
            id=str(row.id),
            level=normalize_education_level(row.level),
            institution_name=row.institution_name,
            country=row.country,
            start_date=row.start_date.isoformat(),
            end_date=row.end_date.isoformat() if row.end_date else "",
            gpa=row.gpa or "",
            grade_scale=row.grade_scale or "",
        )
        for row in rows
    ]
    return ApplicationFormData(personal_info=info, education_history=records)


def existing_documents(db: Session, student: Student) -> dict[str, ExistingDocument]:
    """Latest document of each type already on file from earlier applications."""
    stmt = (
        select(ApplicationDocument)
        .join(Application, ApplicationDocument.application_id == Application.id)
        .where(Application.student_id == student.id)
        .order_by(ApplicationDocument.created_at.desc())
    )
    found: dict[str, ExistingDocument] = {}
    for doc in db.scalars(stmt):
        if doc.document_type in found:
            continue
        found[doc.document_type] = ExistingDocument(
            file_name=doc.storage_path.rsplit("/", 1)[-1],
            file_size=doc.file_size,
            mime_type=doc.mime_type,
            verified_status=doc.verified_status,
        )
    return found


def save_education_history(db: Session, student: Student, records: list[EducationRecord]) -> None:
    """Replace the stored education history with the wizard's records."""
    db.execute(delete(EducationRecordRow).where(EducationRecordRow.student_id == student.id))
    for record in records:
        db.add(
            EducationRecordRow(
                student_id=student.id,
                level=normalize_education_level(record.level),
                institution_name=record.institution_name.strip(),
                country=record.country.strip(),
                start_date=_parse_date(record.start_date),
                end_date=_parse_date(record.end_date),
                gpa=record.gpa or None,
                grade_scale=record.grade_scale or None,
            )
        )
    db.flush()
    db.expire(student, ["education_records"])


# ============================================================
# SUBMISSION
# ============================================================


def submit_application(
    db: Session,
    ctx: SessionContext,
    student: Optional[Student],
    form: ApplicationFormData,
    store: DocumentStore,
) -> Application:
    selection = form.program_selection
    if student is None or not selection.program_id:
        raise PortalError("Error", "Missing required information")
    if not selection.is_valid():
        raise PortalError("Error", "Please choose an intake year and month.")

    program_uuid = _as_uuid(selection.program_id)
    program = None
    if program_uuid is not None:
        program = db.scalar(select(Program).options(joinedload(Program.university)).where(Program.id == program_uuid))
    if program is None:
        raise NotFoundError("Course not found", "Please search and select your course again.")

    intake_uuid = None
    if selection.intake_id:
        intake_uuid = _as_uuid(selection.intake_id)
        intake = db.get(Intake, intake_uuid) if intake_uuid is not None else None
        if intake is None or intake.program_id != program.id:
            raise NotFoundError("Intake not found", "Please choose your intake again.")

    submitted_by_agent = ctx.submitted_by_agent
    application = Application(
        tenant_id=student.tenant_id or DEFAULT_TENANT_ID,
        student_id=student.id,
        program_id=program.id,
        intake_id=intake_uuid,
        intake_year=selection.intake_year,
        intake_month=selection.intake_month,
        status="submitted",
        notes=form.notes.strip() or None,
        agent_id=ctx.agent_id if submitted_by_agent else None,
        submitted_by_agent=submitted_by_agent,
        submission_channel="agent_portal" if submitted_by_agent else "student_portal",
        application_source=APPLICATION_SOURCE,
        submitted_at=_utcnow(),
    )
    db.add(application)
    db.flush()

    stored = _store_documents(db, application, form, store)
    _notify_counselor(db, student, application, program)
    clear_draft(db, student.id)
    log_action(
        db,
        ctx.user_id,
        "application_submitted",
        {
            "application_id": str(application.id),
            "program_id": str(program.id),
            "documents": stored,
            "channel": application.submission_channel,
        },
    )
    logger.info("Application %s submitted for student %s", application.id, student.id)
    return application


def _store_documents(db: Session, application: Application, form: ApplicationFormData, store: DocumentStore) -> list[str]:
    stored: list[str] = []
    for doc_type, document in form.attached_documents().items():
        try:
            path = store.save(application.id, doc_type, document)
        except (OSError, ValueError):
            logger.exception("Failed to upload %s for application %s", doc_type, application.id)
            continue
        db.add(
            ApplicationDocument(
                application_id=application.id,
                document_type=doc_type,
                storage_path=path,
                file_size=document.size,
                mime_type=document.mime_type,
            )
        )
        stored.append(doc_type)
    return stored


def _notify_counselor(db: Session, student: Student, application: Application, program: Program) -> None:
    counselor_id = db.scalar(
        select(StudentAssignment.counselor_id).where(StudentAssignment.student_id == student.id)
    )
    if counselor_id is None:
        return
    db.add(
        Notification(
            user_id=counselor_id,
            tenant_id=application.tenant_id,
            type="general",
            title="New Application Submitted",
            content=f"A new application has been submitted for {program.name or 'a program'}.",
            metadata_json={
                "program_id": str(program.id),
                "program_name": program.name,
                "university_name": program.university.name if program.university else None,
            },
            action_url="/dashboard/applications",
        )
    )


# ============================================================
# DRAFTS
# ============================================================


def save_draft(db: Session, student: Student, form: ApplicationFormData, last_step: int) -> ApplicationDraft:
    draft = db.scalar(select(ApplicationDraft).where(ApplicationDraft.student_id == student.id))
    program_id = form.program_selection.program_id
    if draft is None:
        draft = ApplicationDraft(student_id=student.id, tenant_id=student.tenant_id or DEFAULT_TENANT_ID)
        db.add(draft)
    draft.last_step = min(max(int(last_step), 1), TOTAL_STEPS)
    draft.form_data = form.to_draft_dict()
    draft.program_id = uuid.UUID(program_id) if program_id else None
    db.flush()
    return draft


def load_draft(db: Session, student_id: uuid.UUID) -> Optional[tuple[ApplicationFormData, int]]:
    draft = db.scalar(select(ApplicationDraft).where(ApplicationDraft.student_id == student_id))
    if draft is None:
        return None
    return ApplicationFormData.from_draft_dict(draft.form_data or {}), draft.last_step


def clear_draft(db: Session, student_id: uuid.UUID) -> None:
    db.execute(delete(ApplicationDraft).where(ApplicationDraft.student_id == student_id))


# ============================================================
# LISTING + STATUS
# ============================================================


def list_applications(db: Session, ctx: SessionContext, status: Optional[str] = None) -> list[Application]:
    stmt = (
        select(Application)
        .options(
            joinedload(Application.program).joinedload(Program.university),
            joinedload(Application.student).joinedload(Student.user),
        )
        .order_by(Application.created_at.desc())
    )
    if ctx.role == "student":
        stmt = stmt.join(Student, Application.student_id == Student.id).where(Student.user_id == ctx.user_id)
    elif ctx.role == "agent":
        if ctx.agent_id is None:
            return []
        stmt = stmt.where(Application.agent_id == ctx.agent_id)
    elif ctx.role != "admin":
        stmt = stmt.where(Application.tenant_id == ctx.tenant_id)
    if status:
        stmt = stmt.where(Application.status == status)
    return list(db.scalars(stmt).unique())


def update_application_status(
    db: Session,
    ctx: SessionContext,
    application_id: str | uuid.UUID,
    status: str,
    notes: Optional[str] = None,
) -> Application:
    ctx.require_role(*REVIEWER_ROLES)
    if not is_application_status_option(status):
        raise PortalError("Invalid status", f"'{status}' is not a valid application status.")
    application = db.get(Application, uuid.UUID(str(application_id)))
    if application is None or (ctx.role != "admin" and application.tenant_id != ctx.tenant_id):
        raise NotFoundError("Application not found", "It may have been removed or belongs to another tenant.")

    previous = application.status
    application.status = status
    if notes is not None:
        application.notes = notes.strip() or None

    student = db.get(Student, application.student_id)
    if student is not None and previous != status:
        db.add(
            Notification(
                user_id=student.user_id,
                tenant_id=application.tenant_id,
                type="application_status",
                title="Application status updated",
                content=f"Your application is now: {application_status_label(status)}.",
                metadata_json={"application_id": str(application.id), "status": status, "previous_status": previous},
                action_url="/student/applications",
            )
        )
    log_action(
        db,
        ctx.user_id,
        "application_status_updated",
        {"application_id": str(application.id), "from": previous, "to": status},
    )
    db.flush()
    return application
