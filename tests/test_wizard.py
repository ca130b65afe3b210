from __future__ import annotations

import uuid
from datetime import date

import pytest

from catalog import SearchDebouncer
from errors import FormValidationError
from schemas import IntakeOption, ProgramSummary
from wizard import (
    ApplicationFormData,
    ApplicationWizard,
    DocumentsStep,
    EducationHistoryStep,
    EducationRecord,
    ExistingDocument,
    PersonalInfo,
    PersonalInfoStep,
    ProgramSelection,
    ProgramSelectionStep,
    ReviewSubmitStep,
    UploadedDocument,
    empty_documents,
    format_file_size,
    month_name,
)

TODAY = date(2026, 1, 10)


def make_program(name: str, discipline: str = "Business") -> ProgramSummary:
    return ProgramSummary(
        id=uuid.uuid4(),
        name=name,
        level="master",
        discipline=discipline,
        tuition_amount=20000,
        tuition_currency="GBP",
        university={"name": "University of Leeds", "city": "Leeds", "country": "United Kingdom"},
    )


def make_intake(start: date) -> IntakeOption:
    return IntakeOption(id=uuid.uuid4(), term=f"Autumn {start.year}", start_date=start, app_deadline=date(start.year, 3, 15))


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class FakeCatalog:
    def __init__(self, programs: list[ProgramSummary], extra: list[ProgramSummary] | None = None) -> None:
        self.programs = programs
        self.extra = {str(p.id): p for p in (extra or [])}
        self.intakes: dict[str, list[IntakeOption]] = {}
        self.search_calls: list[str] = []
        self.get_calls: list[str] = []
        self.fail_search = False
        self.fail_get = False

    def search_programs(self, query: str) -> list[ProgramSummary]:
        self.search_calls.append(query)
        if self.fail_search:
            raise RuntimeError("database unavailable")
        return [p for p in self.programs if query.lower() in p.name.lower()]

    def get_program(self, program_id: str):
        self.get_calls.append(program_id)
        if self.fail_get:
            raise RuntimeError("database unavailable")
        return self.extra.get(program_id)

    def list_intakes(self, program_id: str, today: date) -> list[IntakeOption]:
        return self.intakes.get(program_id, [])


class Notices:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def __call__(self, title: str, description: str) -> None:
        self.calls.append((title, description))


def complete_personal_info() -> PersonalInfo:
    return PersonalInfo(
        full_name="Ada Obi",
        email="ada@example.com",
        phone="+2348000000000",
        whatsapp_number="+2348000000000",
        date_of_birth="2001-04-02",
        nationality="Nigerian",
        current_country="Nigeria",
    )


def pdf(name: str = "file.pdf", size: int = 10) -> UploadedDocument:
    return UploadedDocument(file_name=name, mime_type="application/pdf", content=b"x" * size)


# ============================================================
# PERSONAL + EDUCATION
# ============================================================


def test_personal_step_lists_missing_required_fields() -> None:
    step = PersonalInfoStep(PersonalInfo(full_name="Ada Obi", email="ada@example.com", phone="  "))

    assert step.is_valid() is False
    assert step.missing_fields() == ["phone", "whatsapp_number", "date_of_birth", "nationality", "current_country"]

    step.info = complete_personal_info()
    assert step.is_valid() is True


def test_education_step_add_update_delete() -> None:
    records: list[EducationRecord] = []
    step = EducationHistoryStep(records)

    assert step.is_valid() is False
    record = step.add_education_record()
    assert step.editing_id == record.id
    assert record.grade_scale == "4.0"

    step.update_record(record.id, "level", "Bachelors")
    step.update_record(record.id, "institution_name", "University of Lagos")
    step.update_record(record.id, "country", "Nigeria")
    assert step.is_valid() is False
    step.update_record(record.id, "start_date", "2019-09-01")

    assert records[0].level == "bachelor"
    assert step.is_valid() is True

    step.delete_record(record.id)
    assert records == []
    assert step.editing_id is None


def test_education_update_rejects_unknown_field_and_ignores_missing_record() -> None:
    step = EducationHistoryStep([])
    with pytest.raises(ValueError):
        step.update_record("any", "id", "x")
    step.update_record("missing", "country", "Ghana")
    assert step.records == []


# ============================================================
# PROGRAM SELECTION
# ============================================================


def test_search_keeps_listed_selection_and_loads_intakes() -> None:
    program = make_program("MSc Finance")
    catalog = FakeCatalog([program, make_program("MSc Marketing")])
    catalog.intakes[str(program.id)] = [make_intake(date(2026, 9, 1))]
    step = ProgramSelectionStep(ProgramSelection(program_id=str(program.id)), catalog, Notices(), today=TODAY)

    results = step.search("")

    assert len(results) == 2
    assert step.selected_program == program
    assert len(step.intakes) == 1
    assert catalog.get_calls == []


def test_search_failure_notifies_and_clears_results() -> None:
    catalog = FakeCatalog([make_program("MSc Finance")])
    catalog.fail_search = True
    notices = Notices()
    step = ProgramSelectionStep(ProgramSelection(), catalog, notices, today=TODAY)

    assert step.search("fin") == []
    assert step.programs == []
    assert notices.calls == [("Unable to load courses", "Please try again in a moment.")]


def test_preselected_program_outside_results_is_fetched_once() -> None:
    hidden = make_program("PhD Economics", discipline="Economics")
    catalog = FakeCatalog([make_program("MSc Finance")], extra=[hidden])
    step = ProgramSelectionStep(ProgramSelection(program_id=str(hidden.id)), catalog, Notices(), today=TODAY)

    step.search("")
    assert catalog.get_calls == [str(hidden.id)]
    assert step.programs[-1] == hidden
    assert step.selected_program == hidden

    step.search("finance")
    assert catalog.get_calls == [str(hidden.id)]
    assert hidden in step.programs


def test_preselected_program_fetch_failure_notifies() -> None:
    catalog = FakeCatalog([])
    catalog.fail_get = True
    notices = Notices()
    missing_id = str(uuid.uuid4())
    step = ProgramSelectionStep(ProgramSelection(program_id=missing_id), catalog, notices, today=TODAY)

    step.search("")

    assert notices.calls == [("Unable to load selected course", "Please search and select your course again.")]
    assert step.selected_program is None


def test_select_program_and_intake() -> None:
    first = make_program("MSc Finance")
    second = make_program("MSc Marketing")
    catalog = FakeCatalog([first, second])
    intake = make_intake(date(2026, 9, 1))
    catalog.intakes[str(first.id)] = [intake]
    selection = ProgramSelection()
    step = ProgramSelectionStep(selection, catalog, Notices(), today=TODAY)
    step.search("")

    step.select_program(str(first.id))
    step.select_intake(str(intake.id))
    assert selection.intake_id == str(intake.id)
    assert (selection.intake_year, selection.intake_month) == (2026, 9)
    assert step.is_valid() is True

    step.select_program(str(second.id))
    assert selection.program_id == str(second.id)
    assert selection.intake_id is None
    assert step.intakes == []

    step.select_program("not-listed")
    assert selection.program_id == str(second.id)


def test_manual_intake_and_year_options() -> None:
    selection = ProgramSelection(program_id="abc")
    step = ProgramSelectionStep(selection, FakeCatalog([]), Notices(), today=TODAY)

    assert step.year_options() == [2026, 2027, 2028]
    assert step.is_valid() is False
    step.set_manual_intake(year=2027, month=1)
    assert step.is_valid() is True


def test_manual_start_replaces_a_listed_intake() -> None:
    program = make_program("MSc Finance")
    catalog = FakeCatalog([program])
    intake = make_intake(date(2026, 9, 1))
    catalog.intakes[str(program.id)] = [intake]
    selection = ProgramSelection()
    step = ProgramSelectionStep(selection, catalog, Notices(), today=TODAY)
    step.search("")
    step.select_program(str(program.id))
    step.select_intake(str(intake.id))

    step.set_manual_intake(year=2026, month=9)
    assert selection.intake_id == str(intake.id)

    step.set_manual_intake(year=2028, month=2)
    assert (selection.intake_year, selection.intake_month) == (2028, 2)
    assert selection.intake_id is None
    assert step.is_valid() is True


def test_manual_intake_rejects_out_of_range_values() -> None:
    selection = ProgramSelection(program_id="abc", intake_year=2026, intake_month=9)
    step = ProgramSelectionStep(selection, FakeCatalog([]), Notices(), today=TODAY)

    with pytest.raises(FormValidationError) as bad_year:
        step.set_manual_intake(year=2031)
    assert bad_year.value.field_errors == {"intake_year": "invalid"}
    assert bad_year.value.description == "Choose a year between 2026 and 2028."

    with pytest.raises(FormValidationError) as bad_month:
        step.set_manual_intake(month=13)
    assert bad_month.value.field_errors == {"intake_month": "invalid"}

    with pytest.raises(FormValidationError):
        step.set_manual_intake(year=2027, month=0)
    assert (selection.intake_year, selection.intake_month) == (2026, 9)


def test_search_waits_for_query_to_settle() -> None:
    clock = FakeClock()
    catalog = FakeCatalog([make_program("MSc Finance"), make_program("MBA")])
    step = ProgramSelectionStep(
        ProgramSelection(), catalog, Notices(), debouncer=SearchDebouncer(delay=0.3, clock=clock), today=TODAY
    )

    step.set_search_query("fin")
    assert step.poll_search() is False
    clock.now += 0.1
    step.set_search_query("finance")
    clock.now += 0.2
    assert step.poll_search() is False
    clock.now += 0.2
    assert step.poll_search() is True
    assert catalog.search_calls == ["finance"]
    assert [p.name for p in step.programs] == ["MSc Finance"]

    step.set_search_query("finance")
    clock.now += 1
    assert step.poll_search() is False


# ============================================================
# DOCUMENTS
# ============================================================


def test_documents_reject_oversized_and_unsupported_files() -> None:
    step = DocumentsStep(empty_documents(), max_bytes=1024 * 1024)

    with pytest.raises(FormValidationError) as too_large:
        step.attach("transcript", pdf(size=1024 * 1024 + 1))
    assert too_large.value.description == "File size must be less than 1MB"

    with pytest.raises(FormValidationError) as bad_type:
        step.attach("transcript", UploadedDocument("notes.txt", "text/plain", b"hello"))
    assert bad_type.value.description.startswith("File type not supported")
    assert step.documents["transcript"] is None


def test_documents_step_counts_existing_uploads_toward_required() -> None:
    existing = {"passport": ExistingDocument("passport.pdf", 2048, "application/pdf", "verified")}
    step = DocumentsStep(empty_documents(), existing=existing)

    step.attach("passport_photo", UploadedDocument("me.jpg", "image/jpeg", b"jpg"))
    step.attach("transcript", pdf())
    assert step.is_valid() is False

    step.attach("sop", pdf("sop.pdf"))
    assert step.is_valid() is True
    assert step.uploaded_count() == 4

    step.remove("sop")
    assert step.is_valid() is False

    with pytest.raises(ValueError):
        step.attach("visa", pdf())


def test_format_file_size() -> None:
    assert format_file_size(512) == "512 B"
    assert format_file_size(2048) == "2.0 KB"
    assert format_file_size(5 * 1024 * 1024) == "5.0 MB"


# ============================================================
# REVIEW + WIZARD
# ============================================================


def test_review_requires_terms_before_submitting() -> None:
    alerts: list[str] = []
    submitted: list[bool] = []
    review = ReviewSubmitStep(ApplicationFormData(), lambda: submitted.append(True), alerts.append)

    assert review.handle_submit() is False
    assert alerts == ["Please agree to the terms and conditions before submitting"]
    assert submitted == []

    review.agreed_to_terms = True
    assert review.handle_submit() is True
    assert submitted == [True]


def test_review_program_details_failure_is_not_fatal() -> None:
    form = ApplicationFormData(program_selection=ProgramSelection(program_id="abc"))

    def broken_loader(program_id: str):
        raise RuntimeError("timeout")

    review = ReviewSubmitStep(form, lambda: None, lambda message: None, program_details_loader=broken_loader)
    assert review.load_program_details() is None


def test_wizard_gates_each_step() -> None:
    wizard = ApplicationWizard()
    assert wizard.step.title == "Personal Information"
    assert wizard.progress_percent() == 20
    assert wizard.advance() is False

    for name, value in vars(complete_personal_info()).items():
        setattr(wizard.form.personal_info, name, value)
    assert wizard.advance() is True
    assert wizard.current_step == 2

    wizard.education.add_education_record()
    assert wizard.advance() is False
    record = wizard.form.education_history[0]
    for name, value in [("level", "master"), ("institution_name", "Unilag"), ("country", "Nigeria"), ("start_date", "2020-01-01")]:
        wizard.education.update_record(record.id, name, value)
    assert wizard.advance() is True

    wizard.form.program_selection.program_id = "abc"
    wizard.form.program_selection.intake_year = 2026
    wizard.form.program_selection.intake_month = 9
    assert wizard.advance() is True

    for key in ("passport_photo", "transcript", "passport", "sop"):
        wizard.documents.attach(key, pdf(f"{key}.pdf"))
    assert wizard.advance() is True
    assert wizard.current_step == 5
    assert wizard.progress_percent() == 100
    assert wizard.can_advance() is False

    wizard.retreat()
    assert wizard.current_step == 4


def test_wizard_submit_clears_flag_on_failure() -> None:
    wizard = ApplicationWizard()

    def failing(form: ApplicationFormData):
        assert wizard.submitting is True
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        wizard.submit(failing)
    assert wizard.submitting is False


def test_draft_dict_drops_files_and_normalizes_levels() -> None:
    form = ApplicationFormData(personal_info=complete_personal_info())
    form.documents["transcript"] = pdf()
    draft = form.to_draft_dict()

    assert draft["documents"]["transcript"] is None
    draft["education_history"] = [
        {"level": "Masters", "institution_name": "Unilag", "country": "Nigeria", "start_date": "2020-01-01", "legacy": "x"}
    ]
    draft["program_selection"]["intake_month"] = 9

    restored = ApplicationFormData.from_draft_dict(draft)
    assert restored.personal_info == form.personal_info
    assert restored.education_history[0].level == "master"
    assert restored.education_history[0].id
    assert restored.program_selection.intake_month == 9
    assert restored.attached_documents() == {}


def test_month_name() -> None:
    assert month_name(1) == "January"
    assert month_name(12) == "December"
    assert month_name(0) == ""
    assert month_name(13) == ""
