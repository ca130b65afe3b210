"""
Application wizard state.

Everything here is plain Python with no Streamlit import: the page keeps an
``ApplicationWizard`` in ``st.session_state`` and renders whichever step the
cursor points at. Step predicates gate the Continue button only; the service
layer re-checks on submit.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import date
from typing import Any, Callable, Optional, Protocol, TypeVar

from catalog import SearchDebouncer
from education import normalize_education_level
from errors import FormValidationError
from schemas import IntakeOption, ProgramDetails, ProgramSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class WizardStep:
    number: int
    title: str
    description: str


STEPS: list[WizardStep] = [
    WizardStep(1, "Personal Information", "Your basic details"),
    WizardStep(2, "Education History", "Academic background"),
    WizardStep(3, "Desired Course", "Select your course"),
    WizardStep(4, "Documents", "Upload required files"),
    WizardStep(5, "Review & Submit", "Final review"),
]
TOTAL_STEPS = len(STEPS)

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]


def month_name(month: int) -> str:
    if 1 <= month <= 12:
        return MONTH_NAMES[month - 1]
    return ""


# ============================================================
# STEP 1: PERSONAL INFORMATION
# ============================================================

PERSONAL_INFO_REQUIRED = (
    "full_name",
    "email",
    "phone",
    "whatsapp_number",
    "date_of_birth",
    "nationality",
    "current_country",
)


@dataclass
class PersonalInfo:
    full_name: str = ""
    email: str = ""
    phone: str = ""
    whatsapp_number: str = ""
    date_of_birth: str = ""  # ISO yyyy-mm-dd
    nationality: str = ""
    passport_number: str = ""
    current_country: str = ""
    home_address: str = ""
    correspondent_address: str = ""


class PersonalInfoStep:
    def __init__(self, info: PersonalInfo) -> None:
        self.info = info

    def missing_fields(self) -> list[str]:
        return [name for name in PERSONAL_INFO_REQUIRED if not str(getattr(self.info, name) or "").strip()]

    def is_valid(self) -> bool:
        return not self.missing_fields()


# ============================================================
# STEP 2: EDUCATION HISTORY
# ============================================================

GRADE_SCALES = ["4.0", "5.0", "10.0", "100", "Percentage", "Other"]


@dataclass
class EducationRecord:
    id: str
    level: str = ""
    institution_name: str = ""
    country: str = ""
    start_date: str = ""
    end_date: str = ""
    gpa: str = ""
    grade_scale: str = "4.0"

    def is_complete(self) -> bool:
        return bool(
            self.level
            and self.institution_name.strip()
            and self.country.strip()
            and self.start_date
        )


def new_education_record() -> EducationRecord:
    return EducationRecord(id=str(uuid.uuid4()))


class EducationHistoryStep:
    """Edits the record list in place; ``editing_id`` marks the expanded record."""

    EDITABLE_FIELDS = {f.name for f in fields(EducationRecord)} - {"id"}

    def __init__(self, records: list[EducationRecord]) -> None:
        self.records = records
        self.editing_id: Optional[str] = None

    def add_education_record(self) -> EducationRecord:
        record = new_education_record()
        self.records.append(record)
        self.editing_id = record.id
        return record

    def _find(self, record_id: str) -> Optional[EducationRecord]:
        for record in self.records:
            if record.id == record_id:
                return record
        return None

    def update_record(self, record_id: str, field_name: str, value: str) -> None:
        if field_name not in self.EDITABLE_FIELDS:
            raise ValueError(f"Unknown education field: {field_name}")
        record = self._find(record_id)
        if record is None:
            return
        if field_name == "level":
            value = normalize_education_level(value)
        setattr(record, field_name, value)

    def delete_record(self, record_id: str) -> None:
        self.records[:] = [record for record in self.records if record.id != record_id]
        if self.editing_id == record_id:
            self.editing_id = None

    def is_valid(self) -> bool:
        return len(self.records) > 0 and all(record.is_complete() for record in self.records)


# ============================================================
# STEP 3: DESIRED COURSE
# ============================================================


@dataclass
class ProgramSelection:
    program_id: str = ""
    intake_year: int = 0
    intake_month: int = 0
    intake_id: Optional[str] = None

    def is_valid(self) -> bool:
        return self.program_id != "" and self.intake_year > 0 and self.intake_month > 0


class CatalogBackend(Protocol):
    def search_programs(self, query: str) -> list[ProgramSummary]: ...

    def get_program(self, program_id: str) -> Optional[ProgramSummary]: ...

    def list_intakes(self, program_id: str, today: date) -> list[IntakeOption]: ...


Notifier = Callable[[str, str], None]


def intake_year_options(today: date) -> list[int]:
    return [today.year + offset for offset in range(3)]


INTAKE_MONTH_OPTIONS = list(range(1, 13))


class ProgramSelectionStep:
    def __init__(
        self,
        selection: ProgramSelection,
        catalog: CatalogBackend,
        notify: Notifier,
        debouncer: Optional[SearchDebouncer] = None,
        today: Optional[date] = None,
    ) -> None:
        self.selection = selection
        self.catalog = catalog
        self.notify = notify
        self.debouncer = debouncer or SearchDebouncer()
        self.today = today
        self.search_query = ""
        self.programs: list[ProgramSummary] = []
        self.intakes: list[IntakeOption] = []
        self.selected_program: Optional[ProgramSummary] = None
        self._hydration_attempted_for: Optional[str] = None

    def _today(self) -> date:
        return self.today or date.today()

    def set_search_query(self, query: str) -> None:
        self.search_query = query
        self.debouncer.push(query)

    def poll_search(self) -> bool:
        """Run the pending search once the query has settled; True if it ran."""
        query = self.debouncer.poll()
        if query is None:
            return False
        self.search(query)
        return True

    def search(self, query: str = "") -> list[ProgramSummary]:
        try:
            self.programs = list(self.catalog.search_programs(query.strip()))
        except Exception:
            logger.exception("Error fetching programs for query %r", query)
            self.programs = []
            self.notify("Unable to load courses", "Please try again in a moment.")
            return self.programs

        found = self._listed(self.selection.program_id)
        if found is not None:
            self.selected_program = found
            self.load_intakes(found.id)
        else:
            self.hydrate_selection()
        return self.programs

    def _listed(self, program_id: str) -> Optional[ProgramSummary]:
        if not program_id:
            return None
        for program in self.programs:
            if str(program.id) == program_id:
                return program
        return None

    def hydrate_selection(self) -> None:
        """Fetch a pre-selected program that is not on the current result page."""
        program_id = self.selection.program_id
        if not program_id or self._listed(program_id) is not None:
            return
        if self.selected_program is not None and str(self.selected_program.id) == program_id:
            self.programs.append(self.selected_program)
            return
        if self._hydration_attempted_for == program_id:
            return
        self._hydration_attempted_for = program_id
        try:
            program = self.catalog.get_program(program_id)
        except Exception:
            logger.exception("Error loading pre-selected program %s", program_id)
            self.notify("Unable to load selected course", "Please search and select your course again.")
            return
        if program is None:
            return
        self.programs.append(program)
        self.selected_program = program
        self.load_intakes(program.id)

    def load_intakes(self, program_id: Any) -> list[IntakeOption]:
        try:
            self.intakes = list(self.catalog.list_intakes(str(program_id), self._today()))
        except Exception:
            logger.exception("Error fetching intakes for program %s", program_id)
            self.intakes = []
        return self.intakes

    def select_program(self, program_id: str) -> None:
        program = self._listed(program_id)
        if program is None:
            return
        if self.selection.program_id != program_id:
            # Listed intakes belong to the previous program.
            self.selection.intake_id = None
        self.selection.program_id = program_id
        self.selected_program = program
        self.load_intakes(program.id)

    def select_intake(self, intake_id: str) -> None:
        for intake in self.intakes:
            if str(intake.id) == intake_id:
                self.selection.intake_id = intake_id
                self.selection.intake_year = intake.start_date.year
                self.selection.intake_month = intake.start_date.month
                return

    def set_manual_intake(self, year: Optional[int] = None, month: Optional[int] = None) -> None:
        years = self.year_options()
        if year is not None and int(year) not in years:
            raise FormValidationError(
                "Invalid intake year",
                f"Choose a year between {years[0]} and {years[-1]}.",
                {"intake_year": "invalid"},
            )
        if month is not None and int(month) not in INTAKE_MONTH_OPTIONS:
            raise FormValidationError("Invalid intake month", "Choose a month from the list.", {"intake_month": "invalid"})

        changed = False
        if year is not None and int(year) != self.selection.intake_year:
            self.selection.intake_year = int(year)
            changed = True
        if month is not None and int(month) != self.selection.intake_month:
            self.selection.intake_month = int(month)
            changed = True
        if changed:
            # A hand-picked start no longer matches the listed intake.
            self.selection.intake_id = None

    def year_options(self) -> list[int]:
        return intake_year_options(self._today())

    def is_valid(self) -> bool:
        return self.selection.is_valid()


# ============================================================
# STEP 4: DOCUMENTS
# ============================================================


@dataclass(frozen=True)
class DocumentType:
    key: str
    label: str
    description: str
    required: bool


DOCUMENT_TYPES: list[DocumentType] = [
    DocumentType("passport_photo", "Passport Photo", "A recent passport-style photo of yourself", True),
    DocumentType("transcript", "Academic Transcript", "Official transcript of your academic records", True),
    DocumentType("passport", "Passport Copy", "Clear copy of your passport bio-data page", True),
    DocumentType("ielts", "English Test Score (IELTS/TOEFL)", "Official English language test results", False),
    DocumentType("sop", "Statement of Purpose", "Your personal statement explaining your goals", True),
]
DOCUMENT_KEYS = [doc.key for doc in DOCUMENT_TYPES]

MAX_FILE_SIZE = 10 * 1024 * 1024
ALLOWED_MIME_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/jpg",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


@dataclass
class UploadedDocument:
    file_name: str
    mime_type: str
    content: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class ExistingDocument:
    file_name: str
    file_size: int
    mime_type: str
    verified_status: Optional[str] = None


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def empty_documents() -> dict[str, Optional[UploadedDocument]]:
    return {key: None for key in DOCUMENT_KEYS}


class DocumentsStep:
    def __init__(
        self,
        documents: dict[str, Optional[UploadedDocument]],
        existing: Optional[dict[str, ExistingDocument]] = None,
        max_bytes: int = MAX_FILE_SIZE,
    ) -> None:
        self.documents = documents
        self.existing = existing if existing is not None else {}
        self.max_bytes = max_bytes

    def attach(self, key: str, document: UploadedDocument) -> None:
        if key not in DOCUMENT_KEYS:
            raise ValueError(f"Unknown document type: {key}")
        if document.size > self.max_bytes:
            limit = self.max_bytes // (1024 * 1024)
            raise FormValidationError("Upload rejected", f"File size must be less than {limit}MB", {key: "too_large"})
        if document.mime_type not in ALLOWED_MIME_TYPES:
            raise FormValidationError(
                "Upload rejected",
                "File type not supported. Please upload PDF, DOC, DOCX, JPG, or PNG files.",
                {key: "unsupported_type"},
            )
        self.documents[key] = document

    def remove(self, key: str) -> None:
        self.documents[key] = None

    def has(self, key: str) -> bool:
        return self.documents.get(key) is not None or key in self.existing

    def uploaded_count(self) -> int:
        return sum(1 for doc in DOCUMENT_TYPES if self.has(doc.key))

    def is_valid(self) -> bool:
        return all(self.has(doc.key) for doc in DOCUMENT_TYPES if doc.required)


# ============================================================
# FORM + STEP 5: REVIEW & SUBMIT
# ============================================================


@dataclass
class ApplicationFormData:
    personal_info: PersonalInfo = field(default_factory=PersonalInfo)
    education_history: list[EducationRecord] = field(default_factory=list)
    program_selection: ProgramSelection = field(default_factory=ProgramSelection)
    documents: dict[str, Optional[UploadedDocument]] = field(default_factory=empty_documents)
    notes: str = ""

    def attached_documents(self) -> dict[str, UploadedDocument]:
        return {key: doc for key, doc in self.documents.items() if doc is not None}

    def to_draft_dict(self) -> dict[str, Any]:
        # File contents never go into a draft.
        return {
            "personal_info": asdict(self.personal_info),
            "education_history": [asdict(record) for record in self.education_history],
            "program_selection": asdict(self.program_selection),
            "documents": {key: None for key in self.documents},
            "notes": self.notes,
        }

    @classmethod
    def from_draft_dict(cls, data: dict[str, Any]) -> "ApplicationFormData":
        personal_names = {f.name for f in fields(PersonalInfo)}
        record_names = {f.name for f in fields(EducationRecord)}
        selection_names = {f.name for f in fields(ProgramSelection)}
        personal = {k: v for k, v in (data.get("personal_info") or {}).items() if k in personal_names}
        records = []
        for raw in data.get("education_history") or []:
            values = {k: v for k, v in raw.items() if k in record_names}
            values.setdefault("id", str(uuid.uuid4()))
            values["level"] = normalize_education_level(values.get("level") or "")
            records.append(EducationRecord(**values))
        selection = {k: v for k, v in (data.get("program_selection") or {}).items() if k in selection_names}
        return cls(
            personal_info=PersonalInfo(**personal),
            education_history=records,
            program_selection=ProgramSelection(**selection),
            documents=empty_documents(),
            notes=data.get("notes") or "",
        )


class ReviewSubmitStep:
    def __init__(
        self,
        form: ApplicationFormData,
        on_submit: Callable[[], Any],
        alert: Callable[[str], None],
        program_details_loader: Optional[Callable[[str], Optional[ProgramDetails]]] = None,
    ) -> None:
        self.form = form
        self.on_submit = on_submit
        self.alert = alert
        self.program_details_loader = program_details_loader
        self.agreed_to_terms = False
        self.program_details: Optional[ProgramDetails] = None

    def load_program_details(self) -> Optional[ProgramDetails]:
        program_id = self.form.program_selection.program_id
        if not program_id or self.program_details_loader is None:
            return None
        try:
            self.program_details = self.program_details_loader(program_id)
        except Exception:
            # Detail card is decorative; the summary still renders without it.
            logger.exception("Error fetching program details for %s", program_id)
        return self.program_details

    def set_notes(self, notes: str) -> None:
        self.form.notes = notes

    def handle_submit(self) -> bool:
        if not self.agreed_to_terms:
            self.alert("Please agree to the terms and conditions before submitting")
            return False
        self.on_submit()
        return True


class ApplicationWizard:
    def __init__(
        self,
        form: Optional[ApplicationFormData] = None,
        existing_documents: Optional[dict[str, ExistingDocument]] = None,
        current_step: int = 1,
    ) -> None:
        self.form = form or ApplicationFormData()
        self.current_step = min(max(int(current_step), 1), TOTAL_STEPS)
        self.submitting = False
        self.personal = PersonalInfoStep(self.form.personal_info)
        self.education = EducationHistoryStep(self.form.education_history)
        self.documents = DocumentsStep(self.form.documents, existing_documents)

    @property
    def step(self) -> WizardStep:
        return STEPS[self.current_step - 1]

    def step_is_valid(self, number: int) -> bool:
        if number == 1:
            return self.personal.is_valid()
        if number == 2:
            return self.education.is_valid()
        if number == 3:
            return self.form.program_selection.is_valid()
        if number == 4:
            return self.documents.is_valid()
        return True

    def can_advance(self) -> bool:
        return self.current_step < TOTAL_STEPS and self.step_is_valid(self.current_step)

    def advance(self) -> bool:
        if not self.can_advance():
            return False
        self.current_step += 1
        return True

    def retreat(self) -> None:
        if self.current_step > 1:
            self.current_step -= 1

    def progress_percent(self) -> int:
        return round(self.current_step / TOTAL_STEPS * 100)

    def submit(self, submitter: Callable[[ApplicationFormData], T]) -> T:
        self.submitting = True
        try:
            return submitter(self.form)
        finally:
            self.submitting = False
