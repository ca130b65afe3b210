from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Optional

import pandas as pd
import streamlit as st
from pydantic import ValidationError
from sqlalchemy import select

from applications import (
    APPLICATION_STATUS_OPTIONS,
    application_status_label,
    existing_documents,
    list_applications,
    load_draft,
    prefill_form,
    resolve_student,
    save_draft,
    save_education_history,
    submit_application,
    update_application_status,
)
from auth import SessionContext, get_user_by_id, sign_in
from catalog import ProgramCatalog
from config import configure_logging, get_settings
from db import db_session, get_session_factory, init_schema
from education import EDUCATION_LEVEL_OPTIONS, education_level_label
from errors import FormValidationError, PortalError
from export import build_application_pdf, build_json_summary
from messaging import list_contacts, list_conversation, mark_conversation_read, send_message, unread_count
from models import Agent, Student, User
from profiles import (
    missing_required_documents,
    profile_completion_for,
    update_agent_details,
    update_profile,
    update_student_details,
)
from referrals import format_referral_username, generate_agent_invite_link, generate_referral_link, resolve_referrer
from reports import (
    REPORT_OPTIONS,
    application_status_breakdown,
    export_report,
    failure_message,
    success_message,
    tenant_summary,
)
from schemas import LoginRequest
from seed import seed_all
from signup import ROLE_DESCRIPTIONS, ROLE_LABELS, SIGNUP_ROLES, SignupWizard, is_username_available, register_user
from storage import DocumentStore, guess_mime_type
from ui import inject_portal_css, notify, notify_error, notify_warning, render_meter, render_progress, render_status_badge
from wizard import (
    DOCUMENT_TYPES,
    GRADE_SCALES,
    INTAKE_MONTH_OPTIONS,
    STEPS,
    TOTAL_STEPS,
    ApplicationWizard,
    ProgramSelectionStep,
    ReviewSubmitStep,
    UploadedDocument,
    format_file_size,
    month_name,
)

logger = logging.getLogger(__name__)

st.set_page_config(page_title="UniDoxia Portal", layout="wide")
configure_logging()
inject_portal_css()

WIZARD_KEYS = (
    "app_wizard",
    "app_wizard_student_id",
    "app_wizard_resolved_student",
    "app_program_step",
    "app_program_loaded",
    "app_review_step",
)


@st.cache_resource
def bootstrap() -> None:
    init_schema()
    with db_session() as db:
        seed_all(db)


def get_context() -> Optional[SessionContext]:
    state = st.session_state.get("auth_ctx")
    return SessionContext.from_state(state) if state else None


def _clear_auth_state() -> None:
    for key in ("auth_ctx", "signup_wizard", *WIZARD_KEYS):
        st.session_state.pop(key, None)


def _query_get(key: str) -> Optional[str]:
    value = st.query_params.get(key)
    if isinstance(value, list):
        return value[0] if value else None
    return value


# ============================================================
# AUTH
# ============================================================


def render_login() -> None:
    st.subheader("Sign in")
    with st.form("login_form"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in")

    if submitted:
        try:
            request = LoginRequest(email=email.strip(), password=password)
        except ValidationError:
            st.error("Enter a valid email and password.")
            return
        with db_session() as db:
            ctx = sign_in(db, request.email, request.password)
        if ctx is None:
            st.error("Invalid email or password")
            return
        st.session_state["auth_ctx"] = ctx.as_state()
        logger.info("User %s signed in as %s", ctx.user_id, ctx.role)
        st.rerun()


def _show_field_error(exc: FormValidationError) -> None:
    st.error(f"{exc.title}: {exc.description}" if exc.description else exc.title)


def render_signup() -> None:
    ref = _query_get("ref")
    referrer: Optional[dict[str, str]] = None
    if ref:
        with db_session() as db:
            found = resolve_referrer(db, ref)
            if found is not None:
                referrer = {"id": str(found.id), "username": found.username or "", "full_name": found.full_name}
        if referrer:
            st.info(f"Referral from @{referrer['username']} ({referrer['full_name']})")
        else:
            st.warning("We could not find a matching referrer for this link.")

    if "signup_wizard" not in st.session_state:
        wizard = SignupWizard()
        wizard.form.referrer_username = format_referral_username(ref) if ref else None
        st.session_state["signup_wizard"] = wizard
    wizard: SignupWizard = st.session_state["signup_wizard"]
    form = wizard.form

    st.subheader(f"Step {wizard.step} of {wizard.total_steps}: {wizard.title}")
    render_meter("Sign-up progress", wizard.step / wizard.total_steps)

    if wizard.step == 1:
        options = list(SIGNUP_ROLES)
        form.role = st.radio(
            "Select Account Type",
            options,
            index=options.index(form.role) if form.role in options else 0,
            format_func=lambda r: f"{ROLE_LABELS[r]}: {ROLE_DESCRIPTIONS[r]}",
        )
    elif wizard.step == 2:
        form.full_name = st.text_input("Full name", value=form.full_name)
        form.phone = st.text_input("Phone", value=form.phone)
        form.country = st.text_input("Country", value=form.country)
    else:
        form.username = st.text_input("Username", value=form.username)
        form.email = st.text_input("Email", value=form.email)
        form.password = st.text_input("Password", type="password", value=form.password)
        form.confirm_password = st.text_input("Confirm password", type="password", value=form.confirm_password)

    back_col, next_col = st.columns(2)
    if wizard.step > 1 and back_col.button("Back", key="signup_back"):
        wizard.back()
        st.rerun()
    if not wizard.is_final_step():
        if next_col.button("Next", key="signup_next", type="primary"):
            try:
                wizard.next()
            except FormValidationError as exc:
                _show_field_error(exc)
                return
            st.rerun()
        return

    if next_col.button("Create account", key="signup_submit", type="primary"):
        referrer_id = uuid.UUID(referrer["id"]) if referrer else None
        try:
            with db_session() as db:
                checker = SignupWizard(form, username_available=lambda name: is_username_available(db, name))
                checker.validate_step(3)
                register_user(db, form, referrer_id=referrer_id)
        except FormValidationError as exc:
            _show_field_error(exc)
            return
        except Exception as exc:
            notify_error(exc, "Unexpected error.")
            return
        st.session_state.pop("signup_wizard", None)
        notify("Account created!", "You can now sign in with your email and password.")
        st.success("Account created! You can now sign in.")


# ============================================================
# APPLICATION WIZARD
# ============================================================


def _reset_wizard() -> None:
    for key in WIZARD_KEYS:
        st.session_state.pop(key, None)


def _ensure_wizard(ctx: SessionContext, student_id: Optional[str]) -> bool:
    if st.session_state.get("app_wizard") is not None and st.session_state.get("app_wizard_student_id") == student_id:
        return True
    _reset_wizard()
    try:
        with db_session() as db:
            student = resolve_student(db, ctx, student_id)
            restored = load_draft(db, student.id)
            if restored is not None:
                form, last_step = restored
                notify("Draft Restored", "We loaded your saved application progress.")
            else:
                form, last_step = prefill_form(student), 1
            wizard = ApplicationWizard(form, existing_documents(db, student), last_step)
            resolved_id = str(student.id)
    except PortalError as exc:
        notify_error(exc, "Failed to load student data")
        st.warning(exc.description or exc.title)
        return False
    except Exception as exc:
        notify_error(exc, "Failed to load student data")
        return False

    st.session_state["app_wizard"] = wizard
    st.session_state["app_wizard_student_id"] = student_id
    st.session_state["app_wizard_resolved_student"] = resolved_id
    st.session_state["app_program_step"] = ProgramSelectionStep(
        wizard.form.program_selection,
        ProgramCatalog(get_session_factory()),
        notify_warning,
    )
    return True


def _render_personal_step(wizard: ApplicationWizard) -> None:
    info = wizard.form.personal_info
    left, right = st.columns(2)
    info.full_name = left.text_input("Full name *", value=info.full_name)
    info.email = right.text_input("Email *", value=info.email)
    info.phone = left.text_input("Phone *", value=info.phone)
    info.whatsapp_number = right.text_input("WhatsApp number *", value=info.whatsapp_number)
    dob = left.date_input(
        "Date of birth *",
        value=date.fromisoformat(info.date_of_birth) if info.date_of_birth else None,
        min_value=date(1940, 1, 1),
        max_value=date.today(),
    )
    info.date_of_birth = dob.isoformat() if dob else ""
    info.nationality = right.text_input("Nationality *", value=info.nationality)
    info.passport_number = left.text_input("Passport number", value=info.passport_number)
    info.current_country = right.text_input("Current country *", value=info.current_country)
    info.home_address = st.text_area("Home address", value=info.home_address)
    info.correspondent_address = st.text_area("Correspondent address", value=info.correspondent_address)
    missing = wizard.personal.missing_fields()
    if missing:
        st.caption("Required: " + ", ".join(name.replace("_", " ") for name in missing))


def _render_education_step(wizard: ApplicationWizard) -> None:
    step = wizard.education
    level_values = [option["value"] for option in EDUCATION_LEVEL_OPTIONS]
    if not step.records:
        st.info("Add at least one education record.")
    for record in list(step.records):
        title = f"{education_level_label(record.level) or 'New record'} - {record.institution_name or 'Institution'}"
        with st.expander(title, expanded=step.editing_id == record.id):
            options = level_values if record.level in level_values or not record.level else [record.level, *level_values]
            level = st.selectbox(
                "Level *",
                options,
                index=options.index(record.level) if record.level in options else 0,
                format_func=education_level_label,
                key=f"edu_level_{record.id}",
            )
            step.update_record(record.id, "level", level)
            step.update_record(
                record.id,
                "institution_name",
                st.text_input("Institution *", value=record.institution_name, key=f"edu_inst_{record.id}"),
            )
            step.update_record(
                record.id, "country", st.text_input("Country *", value=record.country, key=f"edu_country_{record.id}")
            )
            start_col, end_col = st.columns(2)
            start = start_col.date_input(
                "Start date *",
                value=date.fromisoformat(record.start_date) if record.start_date else None,
                min_value=date(1950, 1, 1),
                key=f"edu_start_{record.id}",
            )
            step.update_record(record.id, "start_date", start.isoformat() if start else "")
            end = end_col.date_input(
                "End date",
                value=date.fromisoformat(record.end_date) if record.end_date else None,
                min_value=date(1950, 1, 1),
                key=f"edu_end_{record.id}",
            )
            step.update_record(record.id, "end_date", end.isoformat() if end else "")
            gpa_col, scale_col = st.columns(2)
            step.update_record(record.id, "gpa", gpa_col.text_input("GPA", value=record.gpa, key=f"edu_gpa_{record.id}"))
            scale = scale_col.selectbox(
                "Grade scale",
                GRADE_SCALES,
                index=GRADE_SCALES.index(record.grade_scale) if record.grade_scale in GRADE_SCALES else 0,
                key=f"edu_scale_{record.id}",
            )
            step.update_record(record.id, "grade_scale", scale)
            if st.button("Remove", key=f"edu_remove_{record.id}"):
                step.delete_record(record.id)
                st.rerun()
    if st.button("Add education record"):
        step.add_education_record()
        st.rerun()


@st.fragment(run_every=0.5)
def _program_search_poller() -> None:
    step: Optional[ProgramSelectionStep] = st.session_state.get("app_program_step")
    if step is not None and step.poll_search():
        st.rerun()


def _render_program_step(wizard: ApplicationWizard) -> None:
    step: ProgramSelectionStep = st.session_state["app_program_step"]
    if not st.session_state.get("app_program_loaded"):
        step.search("")
        st.session_state["app_program_loaded"] = True

    query = st.text_input("Search courses", value=step.search_query, placeholder="Course name or discipline")
    if query != step.search_query:
        step.set_search_query(query)
    _program_search_poller()

    selection = wizard.form.program_selection
    if not step.programs:
        st.info("No courses found. Try a different search.")
    else:
        ids = [str(program.id) for program in step.programs]
        labels = {str(program.id): program.label for program in step.programs}
        choice = st.selectbox(
            "Course *",
            ids,
            index=ids.index(selection.program_id) if selection.program_id in ids else None,
            format_func=lambda pid: labels.get(pid, pid),
            placeholder="Choose a course",
        )
        if choice and choice != selection.program_id:
            step.select_program(choice)
            st.rerun()

    if step.selected_program is not None:
        program = step.selected_program
        uni = program.university
        st.caption(f"{program.discipline} | {uni.name}, {uni.city}, {uni.country}")

    if selection.program_id and step.intakes:
        intake_ids = [str(intake.id) for intake in step.intakes]
        intake_labels = {str(intake.id): intake.label for intake in step.intakes}
        intake_choice = st.selectbox(
            "Select Intake",
            intake_ids,
            index=intake_ids.index(selection.intake_id) if selection.intake_id in intake_ids else None,
            format_func=lambda iid: intake_labels.get(iid, iid),
            placeholder="Choose an intake",
        )
        if intake_choice and intake_choice != selection.intake_id:
            step.select_intake(intake_choice)
            st.rerun()

    if step.intakes:
        return
    st.markdown("No listed intakes. Choose your preferred start:")
    year_col, month_col = st.columns(2)
    years = step.year_options()
    year = year_col.selectbox(
        "Intake year *",
        years,
        index=years.index(selection.intake_year) if selection.intake_year in years else None,
        placeholder="Year",
    )
    month = month_col.selectbox(
        "Intake month *",
        INTAKE_MONTH_OPTIONS,
        index=selection.intake_month - 1 if selection.intake_month in INTAKE_MONTH_OPTIONS else None,
        format_func=month_name,
        placeholder="Month",
    )
    try:
        step.set_manual_intake(year, month)
    except FormValidationError as exc:
        _show_field_error(exc)


def _render_documents_step(wizard: ApplicationWizard) -> None:
    step = wizard.documents
    max_mb = get_settings().max_upload_bytes // (1024 * 1024)
    step.max_bytes = get_settings().max_upload_bytes
    st.caption(f"Upload the required documents for your application. All files must be under {max_mb}MB.")
    for doc_type in DOCUMENT_TYPES:
        label = f"{doc_type.label}{' *' if doc_type.required else ''}"
        current = step.documents.get(doc_type.key)
        existing = step.existing.get(doc_type.key)
        uploaded = st.file_uploader(
            label,
            type=["pdf", "jpg", "jpeg", "png", "doc", "docx"],
            key=f"doc_{doc_type.key}",
            help=doc_type.description,
        )
        if uploaded is not None and (current is None or current.file_name != uploaded.name):
            document = UploadedDocument(
                file_name=uploaded.name,
                mime_type=uploaded.type or guess_mime_type(uploaded.name),
                content=uploaded.getvalue(),
            )
            try:
                step.attach(doc_type.key, document)
            except FormValidationError as exc:
                st.error(exc.description)
        elif uploaded is None and current is not None:
            step.remove(doc_type.key)
        current = step.documents.get(doc_type.key)
        if current is not None:
            st.caption(f"Attached: {current.file_name} ({format_file_size(current.size)})")
        elif existing is not None:
            st.caption(f"On file: {existing.file_name} ({format_file_size(existing.file_size)})")
    st.write(f"{step.uploaded_count()} of {len(DOCUMENT_TYPES)} documents ready")


def _submit_form(ctx: SessionContext, wizard: ApplicationWizard) -> None:
    student_id = uuid.UUID(st.session_state["app_wizard_resolved_student"])

    def persist(form) -> str:
        with db_session() as db:
            student = db.get(Student, student_id)
            save_education_history(db, student, form.education_history)
            application = submit_application(db, ctx, student, form, DocumentStore(get_settings().upload_dir))
            return str(application.id)

    try:
        application_id = wizard.submit(persist)
    except Exception as exc:
        notify_error(exc, "Failed to submit application")
        return
    _reset_wizard()
    st.session_state["last_submitted_application"] = application_id
    notify("Application submitted", "Your application has been submitted successfully.")
    st.rerun()


def _render_review_step(ctx: SessionContext, wizard: ApplicationWizard) -> None:
    form = wizard.form
    catalog = ProgramCatalog(get_session_factory())
    review: Optional[ReviewSubmitStep] = st.session_state.get("app_review_step")
    if review is None or review.form is not form:
        review = ReviewSubmitStep(
            form,
            on_submit=lambda: _submit_form(ctx, wizard),
            alert=st.warning,
            program_details_loader=catalog.get_program_details,
        )
        review.load_program_details()
        st.session_state["app_review_step"] = review

    info = form.personal_info
    st.markdown("#### Personal Information")
    st.write(f"{info.full_name} | {info.email} | {info.phone}")
    st.write(f"Nationality: {info.nationality} | Current country: {info.current_country}")

    st.markdown("#### Education History")
    for record in form.education_history:
        st.write(f"- {education_level_label(record.level)} at {record.institution_name}, {record.country}")

    st.markdown("#### Desired Course")
    details = review.program_details
    if details is not None:
        st.write(f"{details.name} ({details.level}) - {details.discipline}")
        st.write(f"{details.university.name}, {details.university.city}, {details.university.country}")
    selection = form.program_selection
    st.write(f"Intake: {month_name(selection.intake_month)} {selection.intake_year}")

    st.markdown("#### Documents")
    for doc_type in DOCUMENT_TYPES:
        ready = wizard.documents.has(doc_type.key)
        st.write(f"- {doc_type.label}: {'Ready' if ready else 'Missing'}")

    review.set_notes(st.text_area("Additional notes (optional)", value=form.notes))
    review.agreed_to_terms = st.checkbox("I confirm the information is accurate and agree to the terms and conditions")

    pdf_col, json_col = st.columns(2)
    pdf_col.download_button(
        "Download summary (PDF)",
        data=build_application_pdf(form, details),
        file_name="application-summary.pdf",
        mime="application/pdf",
    )
    json_col.download_button(
        "Download summary (JSON)",
        data=build_json_summary(form.to_draft_dict()),
        file_name="application-summary.json",
        mime="application/json",
    )
    if st.button("Submit application", type="primary", disabled=wizard.submitting):
        review.handle_submit()


def _save_draft(wizard: ApplicationWizard) -> None:
    student_id = st.session_state.get("app_wizard_resolved_student")
    if not student_id:
        notify_warning("Unable to save draft", "Student profile not loaded yet.")
        return
    try:
        with db_session() as db:
            student = db.get(Student, uuid.UUID(student_id))
            save_draft(db, student, wizard.form, wizard.current_step)
    except Exception as exc:
        notify_error(exc, "Failed to save draft")
        return
    notify("Draft Saved", "Your progress has been saved.")


def render_application_wizard(ctx: SessionContext) -> None:
    st.header("New Application")
    if st.session_state.get("last_submitted_application"):
        st.success("Application submitted. You can track it from the applications page.")
    student_id: Optional[str] = None
    if ctx.is_agent_flow:
        with db_session() as db:
            stmt = select(Student, User).join(User, Student.user_id == User.id).order_by(User.full_name)
            if ctx.role != "admin":
                stmt = stmt.where(Student.tenant_id == ctx.tenant_id)
            students = [(str(student.id), f"{user.full_name} ({user.email})") for student, user in db.execute(stmt)]
        if not students:
            st.info("No students available yet.")
            return
        labels = dict(students)
        student_id = st.selectbox("Student", list(labels), format_func=lambda sid: labels[sid])

    if not _ensure_wizard(ctx, student_id):
        return
    wizard: ApplicationWizard = st.session_state["app_wizard"]

    render_progress(wizard.current_step, TOTAL_STEPS, [step.title for step in STEPS])
    st.subheader(wizard.step.title)
    st.caption(wizard.step.description)

    if wizard.current_step == 1:
        _render_personal_step(wizard)
    elif wizard.current_step == 2:
        _render_education_step(wizard)
    elif wizard.current_step == 3:
        _render_program_step(wizard)
    elif wizard.current_step == 4:
        _render_documents_step(wizard)
    else:
        _render_review_step(ctx, wizard)

    back_col, save_col, next_col = st.columns(3)
    if wizard.current_step > 1 and back_col.button("Back", key="wizard_back"):
        wizard.retreat()
        st.rerun()
    if save_col.button("Save draft", key="wizard_save"):
        _save_draft(wizard)
    if wizard.current_step < TOTAL_STEPS:
        if next_col.button("Continue", key="wizard_next", type="primary", disabled=not wizard.can_advance()):
            wizard.advance()
            st.rerun()


# ============================================================
# APPLICATIONS + REVIEW
# ============================================================


def _application_rows(ctx: SessionContext) -> list[dict[str, Any]]:
    with db_session() as db:
        rows = []
        for app in list_applications(db, ctx):
            program = app.program
            student_user = app.student.user if app.student else None
            rows.append(
                {
                    "id": str(app.id),
                    "student": student_user.full_name if student_user else "N/A",
                    "course": program.name if program else "N/A",
                    "university": program.university.name if program and program.university else "N/A",
                    "intake": f"{month_name(app.intake_month)} {app.intake_year}",
                    "status": app.status,
                    "status_label": application_status_label(app.status),
                    "channel": app.submission_channel,
                    "submitted_at": app.submitted_at,
                }
            )
        return rows


def render_applications(ctx: SessionContext) -> None:
    st.header("Applications")
    last_submitted = st.session_state.pop("last_submitted_application", None)
    if last_submitted:
        st.success(f"Application {last_submitted[:8]} submitted.")
    try:
        rows = _application_rows(ctx)
    except Exception as exc:
        notify_error(exc, "Failed to load applications")
        return
    if not rows:
        st.info("No applications yet.")
        return
    df = pd.DataFrame(rows)
    st.dataframe(df.drop(columns=["status"]), use_container_width=True, hide_index=True)

    if ctx.role not in {"partner", "staff", "admin"}:
        return

    st.subheader("Update status")
    labels = {row["id"]: f"{row['student']} - {row['course']}" for row in rows}
    target = st.selectbox("Application", list(labels), format_func=lambda aid: labels[aid])
    current = next(row for row in rows if row["id"] == target)
    render_status_badge(current["status"], current["status_label"])
    values = [option["value"] for option in APPLICATION_STATUS_OPTIONS]
    with st.form("status_form"):
        status = st.selectbox(
            "New status",
            values,
            index=values.index(current["status"]) if current["status"] in values else 0,
            format_func=application_status_label,
        )
        notes = st.text_area("Notes")
        submitted = st.form_submit_button("Update status")
    if submitted:
        try:
            with db_session() as db:
                update_application_status(db, ctx, target, status, notes or None)
        except Exception as exc:
            notify_error(exc, "Failed to update application status")
            return
        notify("Status updated", f"Application is now {application_status_label(status)}.")
        st.rerun()


# ============================================================
# REPORTS + DASHBOARD
# ============================================================


def _report_scope(ctx: SessionContext) -> Optional[uuid.UUID]:
    return None if ctx.role == "admin" else ctx.tenant_id


def render_dashboard(ctx: SessionContext) -> None:
    st.header("Overview")
    try:
        with db_session() as db:
            summary = tenant_summary(db, _report_scope(ctx))
            breakdown = application_status_breakdown(db, _report_scope(ctx))
    except Exception as exc:
        notify_error(exc, "Failed to load dashboard")
        return
    cols = st.columns(4)
    cols[0].metric("Students", summary["students"])
    cols[1].metric("Agents", summary["agents"])
    cols[2].metric("Applications", summary["applications"])
    cols[3].metric("Enrolled", summary["enrolled"])
    cols = st.columns(4)
    cols[0].metric("Universities", summary["universities"])
    cols[1].metric("Courses", summary["programs"])
    cols[2].metric("Awaiting review", summary["submitted_applications"])
    cols[3].metric("Revenue", summary["revenue"])
    if not breakdown.empty:
        st.subheader("Applications by status")
        st.bar_chart(breakdown.rename(index=application_status_label))


def render_reports(ctx: SessionContext) -> None:
    st.header("Reports")
    values = [option["value"] for option in REPORT_OPTIONS]
    options = {option["value"]: option for option in REPORT_OPTIONS}
    report_type = st.selectbox("Select Report Type", values, format_func=lambda v: options[v]["label"])
    st.caption(options[report_type]["description"])
    if st.button(f"Export {options[report_type]['label']}", type="primary"):
        try:
            with db_session() as db:
                filename, csv_text = export_report(db, report_type, _report_scope(ctx))
        except Exception as exc:
            notify_error(exc, failure_message(report_type))
        else:
            st.session_state["report_download"] = (filename, csv_text)
            notify("Success", success_message(report_type))
    ready = st.session_state.get("report_download")
    if ready:
        filename, csv_text = ready
        st.download_button(f"Download {filename}", data=csv_text.encode("utf-8"), file_name=filename, mime="text/csv")


# ============================================================
# REFERRALS, PROFILE, MESSAGES
# ============================================================


def render_referrals(ctx: SessionContext) -> None:
    st.header("Referral links")
    with db_session() as db:
        user = get_user_by_id(db, ctx.user_id)
        agent = db.scalar(select(Agent).where(Agent.user_id == ctx.user_id))
        username = user.username if user else None
        invite_code = agent.invite_code if agent else None
    referral_link = generate_referral_link(username)
    if referral_link:
        st.text_input("Your referral link", value=referral_link, disabled=True)
    else:
        st.info("Set a username to get a referral link.")
    if invite_code:
        st.text_input("Agent invite link", value=generate_agent_invite_link(invite_code), disabled=True)


def render_profile(ctx: SessionContext) -> None:
    st.header("Profile settings")
    with db_session() as db:
        user = get_user_by_id(db, ctx.user_id)
        completion = profile_completion_for(db, user)
        student = db.scalar(select(Student).where(Student.user_id == ctx.user_id))
        agent = db.scalar(select(Agent).where(Agent.user_id == ctx.user_id))
        uploaded_types: list[str] = []
        if student is not None:
            uploaded_types = list(existing_documents(db, student))
    render_meter("Profile completion", completion / 100)

    with st.form("profile_form"):
        full_name = st.text_input("Full name", value=user.full_name)
        phone = st.text_input("Phone", value=user.phone or "")
        country = st.text_input("Country", value=user.country or "")
        avatar_url = st.text_input("Avatar URL", value=user.avatar_url or "")
        saved = st.form_submit_button("Save profile")
    if saved:
        try:
            with db_session() as db:
                update_profile(db, ctx, {"full_name": full_name, "phone": phone, "country": country, "avatar_url": avatar_url})
        except Exception as exc:
            notify_error(exc, "Failed to update profile")
        else:
            notify("Profile updated")
            st.rerun()

    if student is not None:
        with st.form("student_form"):
            nationality = st.text_input("Nationality", value=student.nationality or "")
            passport_number = st.text_input("Passport number", value=student.passport_number or "")
            home_address = st.text_area("Home address", value=student.home_address or "")
            saved_student = st.form_submit_button("Save student details")
        if saved_student:
            try:
                with db_session() as db:
                    update_student_details(
                        db,
                        ctx,
                        {"nationality": nationality, "passport_number": passport_number, "home_address": home_address},
                    )
            except Exception as exc:
                notify_error(exc, "Failed to update student details")
            else:
                notify("Student details updated")
                st.rerun()
        missing = missing_required_documents(uploaded_types)
        if missing:
            st.warning("Missing documents: " + ", ".join(doc.label for doc in missing))

    if agent is not None:
        with st.form("agent_form"):
            company_name = st.text_input("Company name", value=agent.company_name or "")
            verification_url = st.text_input("Verification document URL", value=agent.verification_document_url or "")
            saved_agent = st.form_submit_button("Save agency details")
        if saved_agent:
            try:
                with db_session() as db:
                    update_agent_details(
                        db, ctx, {"company_name": company_name, "verification_document_url": verification_url}
                    )
            except Exception as exc:
                notify_error(exc, "Failed to update agency details")
            else:
                notify("Agency details updated")
                st.rerun()


def render_messages(ctx: SessionContext) -> None:
    st.header("Messages")
    with db_session() as db:
        contacts = [(str(user.id), f"{user.full_name or user.email} ({user.role})") for user in list_contacts(db, ctx)]
    if not contacts:
        st.info("No contacts available.")
        return
    labels = dict(contacts)
    other_id = st.selectbox("Conversation with", list(labels), format_func=lambda uid: labels[uid])
    with db_session() as db:
        mark_conversation_read(db, ctx, other_id)
        history = [(m.sender_id == ctx.user_id, m.content, m.created_at) for m in list_conversation(db, ctx, other_id)]
    for mine, content, created_at in history:
        with st.chat_message("user" if mine else "assistant"):
            st.write(content)
            st.caption(f"{created_at:%Y-%m-%d %H:%M}" if created_at else "")
    text = st.chat_input("Write a message")
    if text:
        try:
            with db_session() as db:
                send_message(db, ctx, other_id, text)
        except Exception as exc:
            notify_error(exc, "Failed to send message")
        else:
            st.rerun()


# ============================================================
# SHELL
# ============================================================

PAGES_BY_ROLE: dict[str, list[str]] = {
    "student": ["New Application", "My Applications", "Messages", "Profile"],
    "agent": ["New Application", "Applications", "Referrals", "Messages", "Profile"],
    "partner": ["Overview", "Applications", "Reports", "Messages", "Profile"],
    "counselor": ["Applications", "Messages", "Profile"],
    "staff": ["Overview", "Applications", "New Application", "Reports", "Messages", "Profile"],
    "admin": ["Overview", "Applications", "New Application", "Reports", "Messages", "Profile"],
}


def render_portal(ctx: SessionContext) -> None:
    with db_session() as db:
        unread = unread_count(db, ctx)
    st.sidebar.success(f"Signed in as {ctx.email} ({ctx.role})")
    pages = PAGES_BY_ROLE.get(ctx.role, ["Profile"])
    page = st.sidebar.radio(
        "Navigate",
        pages,
        format_func=lambda p: f"{p} ({unread})" if p == "Messages" and unread else p,
    )
    if st.sidebar.button("Sign out"):
        _clear_auth_state()
        st.rerun()

    if page == "New Application":
        render_application_wizard(ctx)
    elif page in {"Applications", "My Applications"}:
        render_applications(ctx)
    elif page == "Overview":
        render_dashboard(ctx)
    elif page == "Reports":
        render_reports(ctx)
    elif page == "Referrals":
        render_referrals(ctx)
    elif page == "Messages":
        render_messages(ctx)
    else:
        render_profile(ctx)


def main() -> None:
    bootstrap()
    st.title("UniDoxia")
    ctx = get_context()
    if ctx is not None:
        render_portal(ctx)
        return

    default_tab = 1 if _query_get("ref") else 0
    choice = st.radio("Account", ["Sign in", "Create account"], index=default_tab, horizontal=True)
    if choice == "Sign in":
        render_login()
    else:
        render_signup()


if __name__ == "__main__":
    main()
