from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy import func, select

from applications import (
    application_status_label,
    existing_documents,
    is_application_status_option,
    list_applications,
    load_draft,
    prefill_form,
    resolve_student,
    save_draft,
    save_education_history,
    submit_application,
    update_application_status,
)
from errors import NotFoundError, PermissionDenied, PortalError
from models import (
    Application,
    ApplicationDocument,
    ApplicationDraft,
    AuditLog,
    Intake,
    Notification,
    Program,
    Student,
)
from storage import DocumentStore
from wizard import ApplicationFormData, EducationRecord, ProgramSelection, UploadedDocument


class FixedClock:
    def __call__(self) -> float:
        return 1767225600.0


class BrokenStore(DocumentStore):
    def save(self, application_id, document_type, document) -> str:
        raise OSError("disk full")


@pytest.fixture()
def student(db, users) -> Student:
    return db.scalar(select(Student).where(Student.user_id == users["student"].id))


@pytest.fixture()
def program(db, catalog_rows) -> Program:
    return db.scalar(select(Program).where(Program.name == "MSc Data Science and Analytics"))


def filled_form(program: Program, intake: Intake | None = None) -> ApplicationFormData:
    form = ApplicationFormData(
        program_selection=ProgramSelection(
            program_id=str(program.id),
            intake_year=intake.start_date.year if intake else 2026,
            intake_month=intake.start_date.month if intake else 9,
            intake_id=str(intake.id) if intake else None,
        ),
        notes="  Interested in scholarships.  ",
    )
    form.documents["transcript"] = UploadedDocument("transcript.pdf", "application/pdf", b"%PDF-1.4 transcript")
    form.documents["passport_photo"] = UploadedDocument("photo.png", "image/png", b"png-bytes")
    return form


# ============================================================
# STUDENT RESOLUTION
# ============================================================


def test_resolve_student_for_student_and_agent_flows(db, contexts, student) -> None:
    assert resolve_student(db, contexts["student"]).id == student.id
    assert resolve_student(db, contexts["agent"], student.id).id == student.id
    assert resolve_student(db, contexts["staff"], str(student.id)).id == student.id


def test_resolve_student_rejections(db, contexts, student) -> None:
    with pytest.raises(PortalError) as missing_target:
        resolve_student(db, contexts["staff"])
    assert missing_target.value.title == "Student required"

    with pytest.raises(PermissionDenied):
        resolve_student(db, contexts["student"], student.id)

    with pytest.raises(NotFoundError) as unknown:
        resolve_student(db, contexts["agent"], uuid.uuid4())
    assert unknown.value.title == "Profile Required"
    assert unknown.value.description == "Please complete your student profile first."


def test_prefill_form_orders_education_newest_first(db, users, student) -> None:
    records = [
        EducationRecord(id="a", level="High School", institution_name="Kings College", country="Nigeria", start_date="2012-09-01", end_date="2018-06-30"),
        EducationRecord(id="b", level="Bachelors", institution_name="Unilag", country="Nigeria", start_date="2018-10-01", gpa="3.6"),
    ]
    save_education_history(db, student, records)
    db.commit()

    form = prefill_form(student)

    assert form.personal_info.full_name == "Demo Student"
    assert form.personal_info.email == "student@demo.unidoxia.com"
    assert form.personal_info.nationality == "Nigerian"
    assert [r.institution_name for r in form.education_history] == ["Unilag", "Kings College"]
    assert form.education_history[0].level == "bachelor"
    assert form.education_history[0].end_date == ""
    assert form.education_history[1].level == "high_school"


# ============================================================
# SUBMISSION
# ============================================================


def test_agent_submission_stores_documents_and_notifies_counselor(db, tmp_path, users, contexts, student, program) -> None:
    intake = program.intakes[0]
    save_draft(db, student, filled_form(program, intake), last_step=4)
    store = DocumentStore(tmp_path, clock=FixedClock())

    application = submit_application(db, contexts["agent"], student, filled_form(program, intake), store)
    db.commit()

    assert application.status == "submitted"
    assert application.submitted_by_agent is True
    assert application.agent_id == contexts["agent"].agent_id
    assert application.submission_channel == "agent_portal"
    assert application.application_source == "UniDoxia"
    assert application.notes == "Interested in scholarships."
    assert application.intake_id == intake.id
    assert (application.intake_year, application.intake_month) == (2026, 6)

    documents = db.scalars(select(ApplicationDocument).where(ApplicationDocument.application_id == application.id)).all()
    assert sorted(d.document_type for d in documents) == ["passport_photo", "transcript"]
    transcript = next(d for d in documents if d.document_type == "transcript")
    assert transcript.storage_path == f"{application.id}/transcript_1767225600000.pdf"
    assert store.read(transcript.storage_path) == b"%PDF-1.4 transcript"

    notice = db.scalar(select(Notification).where(Notification.user_id == users["counselor"].id))
    assert notice.title == "New Application Submitted"
    assert notice.action_url == "/dashboard/applications"
    assert notice.metadata_json["program_name"] == "MSc Data Science and Analytics"
    assert notice.metadata_json["university_name"] == "University of Leeds"

    assert db.scalar(select(ApplicationDraft).where(ApplicationDraft.student_id == student.id)) is None
    audit = db.scalar(select(AuditLog).where(AuditLog.action == "application_submitted"))
    assert audit.details_json["channel"] == "agent_portal"


def test_student_submission_uses_student_portal_channel(db, tmp_path, contexts, student, program) -> None:
    application = submit_application(db, contexts["student"], student, filled_form(program), DocumentStore(tmp_path))

    assert application.submitted_by_agent is False
    assert application.agent_id is None
    assert application.submission_channel == "student_portal"
    assert application.intake_id is None


def test_submission_requires_program_and_intake(db, tmp_path, contexts, student, program) -> None:
    store = DocumentStore(tmp_path)

    with pytest.raises(PortalError) as no_program:
        submit_application(db, contexts["student"], student, ApplicationFormData(), store)
    assert no_program.value.description == "Missing required information"

    with pytest.raises(PortalError) as no_student:
        submit_application(db, contexts["student"], None, filled_form(program), store)
    assert no_student.value.description == "Missing required information"

    form = filled_form(program)
    form.program_selection.intake_month = 0
    with pytest.raises(PortalError) as no_intake:
        submit_application(db, contexts["student"], student, form, store)
    assert no_intake.value.description == "Please choose an intake year and month."

    form = filled_form(program)
    form.program_selection.program_id = str(uuid.uuid4())
    with pytest.raises(NotFoundError):
        submit_application(db, contexts["student"], student, form, store)

    assert db.scalar(select(func.count()).select_from(Application)) == 0


def test_malformed_or_foreign_ids_from_a_restored_draft(db, tmp_path, contexts, student, program) -> None:
    store = DocumentStore(tmp_path)

    form = filled_form(program)
    form.program_selection.program_id = "not-a-uuid"
    with pytest.raises(NotFoundError) as bad_program:
        submit_application(db, contexts["student"], student, form, store)
    assert bad_program.value.title == "Course not found"

    form = filled_form(program)
    form.program_selection.intake_id = "not-a-uuid"
    with pytest.raises(NotFoundError) as bad_intake:
        submit_application(db, contexts["student"], student, form, store)
    assert bad_intake.value.title == "Intake not found"

    other = db.scalar(select(Program).where(Program.id != program.id))
    form = filled_form(program)
    form.program_selection.intake_id = str(other.intakes[0].id)
    with pytest.raises(NotFoundError):
        submit_application(db, contexts["student"], student, form, store)

    assert db.scalar(select(func.count()).select_from(Application)) == 0


def test_failed_document_upload_does_not_block_submission(db, tmp_path, contexts, student, program) -> None:
    application = submit_application(db, contexts["student"], student, filled_form(program), BrokenStore(tmp_path))
    db.commit()

    assert application.status == "submitted"
    assert db.scalar(select(func.count()).select_from(ApplicationDocument)) == 0


def test_existing_documents_reports_latest_per_type(db, tmp_path, contexts, student, program) -> None:
    submit_application(db, contexts["student"], student, filled_form(program), DocumentStore(tmp_path, clock=FixedClock()))
    db.commit()

    found = existing_documents(db, student)

    assert set(found) == {"transcript", "passport_photo"}
    assert found["transcript"].file_name == "transcript_1767225600000.pdf"
    assert found["passport_photo"].mime_type == "image/png"


# ============================================================
# DRAFTS
# ============================================================


def test_draft_save_and_restore(db, student, program) -> None:
    form = filled_form(program)
    form.personal_info.full_name = "Demo Student"

    save_draft(db, student, form, last_step=9)
    save_draft(db, student, form, last_step=3)
    db.commit()

    assert db.scalar(select(func.count()).select_from(ApplicationDraft)) == 1
    restored, last_step = load_draft(db, student.id)
    assert last_step == 3
    assert restored.personal_info.full_name == "Demo Student"
    assert restored.program_selection.program_id == str(program.id)
    assert restored.attached_documents() == {}
    assert load_draft(db, uuid.uuid4()) is None


# ============================================================
# LISTING + STATUS
# ============================================================


def test_list_applications_is_scoped_by_role(db, tmp_path, contexts, student, program) -> None:
    store = DocumentStore(tmp_path)
    by_agent = submit_application(db, contexts["agent"], student, filled_form(program), store)
    by_student = submit_application(db, contexts["student"], student, filled_form(program), store)
    db.commit()

    assert {a.id for a in list_applications(db, contexts["student"])} == {by_agent.id, by_student.id}
    assert [a.id for a in list_applications(db, contexts["agent"])] == [by_agent.id]
    assert len(list_applications(db, contexts["staff"])) == 2
    assert list_applications(db, contexts["partner"], status="enrolled") == []
    assert list_applications(db, contexts["counselor"])[0].program.university.name == "University of Leeds"


def test_status_update_notifies_student(db, tmp_path, users, contexts, student, program) -> None:
    application = submit_application(db, contexts["student"], student, filled_form(program), DocumentStore(tmp_path))
    db.commit()

    updated = update_application_status(db, contexts["staff"], application.id, "conditional_offer", notes="Send deposit")
    db.commit()

    assert updated.status == "conditional_offer"
    assert updated.notes == "Send deposit"
    notice = db.scalar(select(Notification).where(Notification.user_id == users["student"].id))
    assert notice.content == "Your application is now: Conditional Offer."
    assert notice.metadata_json["previous_status"] == "submitted"


def test_status_update_rejections(db, tmp_path, contexts, student, program) -> None:
    application = submit_application(db, contexts["student"], student, filled_form(program), DocumentStore(tmp_path))

    with pytest.raises(PermissionDenied):
        update_application_status(db, contexts["student"], application.id, "enrolled")
    with pytest.raises(PortalError) as invalid:
        update_application_status(db, contexts["admin"], application.id, "accepted")
    assert invalid.value.title == "Invalid status"
    with pytest.raises(PortalError):
        update_application_status(db, contexts["admin"], application.id, "draft")
    with pytest.raises(NotFoundError):
        update_application_status(db, contexts["admin"], uuid.uuid4(), "enrolled")


def test_application_status_label() -> None:
    assert application_status_label("screening") == "Under Review"
    assert application_status_label("cas_loa") == "CAS / LOA Issued"
    assert application_status_label("draft") == "draft"
    assert application_status_label(None) == ""


def test_reviewer_status_options_exclude_stored_only_statuses() -> None:
    assert is_application_status_option("screening") is True
    assert is_application_status_option("draft") is False
    assert is_application_status_option("deferred") is False
    assert is_application_status_option(None) is False
