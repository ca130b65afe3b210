from __future__ import annotations

import io
import json
from datetime import datetime, timezone
from typing import Any, Optional
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from education import education_level_label
from schemas import ProgramDetails
from wizard import DOCUMENT_TYPES, ApplicationFormData, format_file_size, month_name


def _safe_text(value: Any) -> str:
    if value is None or value == "":
        return "-"
    return escape(str(value))


def build_application_pdf(
    form: ApplicationFormData,
    program_details: Optional[ProgramDetails] = None,
    generated_at: Optional[datetime] = None,
) -> bytes:
    """Printable summary of an application as shown on the review step."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title="UniDoxia Application Summary")
    styles = getSampleStyleSheet()
    normal = styles["BodyText"]
    heading = styles["Heading2"]
    stamp = (generated_at or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M UTC")

    story = []
    story.append(Paragraph("UniDoxia Application Summary", styles["Title"]))
    story.append(Paragraph(f"Generated: {stamp}", normal))
    story.append(Spacer(1, 12))

    info = form.personal_info
    story.append(Paragraph("Personal Information", heading))
    for label, value in [
        ("Full name", info.full_name),
        ("Email", info.email),
        ("Phone", info.phone),
        ("WhatsApp", info.whatsapp_number),
        ("Date of birth", info.date_of_birth),
        ("Nationality", info.nationality),
        ("Passport number", info.passport_number),
        ("Current country", info.current_country),
        ("Home address", info.home_address),
        ("Correspondent address", info.correspondent_address),
    ]:
        story.append(Paragraph(f"{label}: {_safe_text(value)}", normal))
    story.append(Spacer(1, 8))

    story.append(Paragraph("Education History", heading))
    if not form.education_history:
        story.append(Paragraph("No education records.", normal))
    for idx, record in enumerate(form.education_history, start=1):
        story.append(
            Paragraph(
                f"{idx}. {_safe_text(education_level_label(record.level))} - {_safe_text(record.institution_name)}",
                styles["Heading3"],
            )
        )
        story.append(Paragraph(f"Country: {_safe_text(record.country)}", normal))
        story.append(Paragraph(f"Period: {_safe_text(record.start_date)} to {_safe_text(record.end_date or 'present')}", normal))
        if record.gpa:
            story.append(Paragraph(f"GPA: {_safe_text(record.gpa)} / {_safe_text(record.grade_scale)}", normal))
    story.append(Spacer(1, 8))

    selection = form.program_selection
    story.append(Paragraph("Desired Course", heading))
    if program_details is not None:
        story.append(Paragraph(f"Course: {_safe_text(program_details.name)} ({_safe_text(program_details.level)})", normal))
        story.append(Paragraph(f"Discipline: {_safe_text(program_details.discipline)}", normal))
        university = program_details.university
        story.append(
            Paragraph(
                f"University: {_safe_text(university.name)}, {_safe_text(university.city)}, {_safe_text(university.country)}",
                normal,
            )
        )
        story.append(Paragraph(f"Tuition: {_safe_text(program_details.tuition_display)}", normal))
    else:
        story.append(Paragraph(f"Course id: {_safe_text(selection.program_id)}", normal))
    story.append(
        Paragraph(f"Intake: {_safe_text(month_name(selection.intake_month))} {_safe_text(selection.intake_year or None)}", normal)
    )
    story.append(Spacer(1, 8))

    story.append(Paragraph("Documents", heading))
    for doc_type in DOCUMENT_TYPES:
        document = form.documents.get(doc_type.key)
        status = f"{document.file_name} ({format_file_size(document.size)})" if document else "Not attached"
        story.append(Paragraph(f"{doc_type.label}: {_safe_text(status)}", normal))

    if form.notes.strip():
        story.append(Spacer(1, 8))
        story.append(Paragraph("Additional Notes", heading))
        story.append(Paragraph(_safe_text(form.notes.strip()), normal))

    doc.build(story)
    buffer.seek(0)
    return buffer.read()


def build_json_summary(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, indent=2, ensure_ascii=True, default=str).encode("utf-8")
