from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

from export import build_application_pdf, build_json_summary
from schemas import ProgramDetails
from wizard import ApplicationFormData, EducationRecord, PersonalInfo, ProgramSelection, UploadedDocument


def sample_form() -> ApplicationFormData:
    form = ApplicationFormData(
        personal_info=PersonalInfo(full_name="Ada <Obi> & Sons", email="ada@example.com", nationality="Nigerian"),
        education_history=[
            EducationRecord(id="1", level="bachelor", institution_name="Unilag", country="Nigeria", start_date="2018-10-01", gpa="3.6")
        ],
        program_selection=ProgramSelection(program_id=str(uuid.uuid4()), intake_year=2026, intake_month=9),
        notes="Needs accommodation",
    )
    form.documents["transcript"] = UploadedDocument("transcript.pdf", "application/pdf", b"x" * 2048)
    return form


def test_pdf_summary_renders_with_and_without_program_details() -> None:
    form = sample_form()
    details = ProgramDetails(
        id=uuid.uuid4(),
        name="MSc Data Science",
        level="master",
        discipline="Computer Science",
        tuition_amount=31750,
        tuition_currency="GBP",
        university={"name": "University of Leeds"},
        duration_months=12,
    )
    stamp = datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)

    with_details = build_application_pdf(form, details, generated_at=stamp)
    without_details = build_application_pdf(ApplicationFormData(), generated_at=stamp)

    assert with_details.startswith(b"%PDF")
    assert without_details.startswith(b"%PDF")
    assert details.university.city == "Unknown City"


def test_json_summary_is_ascii_and_indented() -> None:
    payload = {"student": "Zoë", "submitted_at": datetime(2026, 10, 17, tzinfo=timezone.utc), "intake": {"month": 9}}

    raw = build_json_summary(payload)

    assert raw.decode("ascii")
    assert b'\n  "intake"' in raw
    assert json.loads(raw)["student"] == "Zoë"
    assert json.loads(raw)["submitted_at"] == "2026-10-17 00:00:00+00:00"
