from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import date, datetime
from typing import Any, Callable, Iterable, Mapping, Optional

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from errors import PortalError
from models import (
    Agent,
    Application,
    Commission,
    Payment,
    Program,
    Student,
    University,
    User,
)

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
MISSING = "N/A"

REPORT_HEADERS: dict[str, list[str]] = {
    "users": ["id", "full_name", "email", "role", "active", "created_at"],
    "applications": [
        "id",
        "student_name",
        "student_email",
        "program_name",
        "program_level",
        "university",
        "country",
        "status",
        "intake",
        "created_at",
    ],
    "payments": ["id", "student_name", "student_email", "amount", "currency", "status", "purpose", "created_at"],
    "commissions": [
        "id",
        "agent_name",
        "agent_email",
        "student_name",
        "level",
        "rate_percent",
        "amount",
        "currency",
        "status",
        "created_at",
    ],
    "universities": ["id", "name", "country", "city", "website", "active", "created_at"],
    "programs": [
        "id",
        "name",
        "level",
        "discipline",
        "duration_months",
        "tuition",
        "university",
        "country",
        "active",
        "created_at",
    ],
}
REPORT_TYPES = list(REPORT_HEADERS)

REPORT_OPTIONS: list[dict[str, str]] = [
    {"value": "users", "label": "Users Report", "noun": "Users", "description": "Export all user accounts with roles and status"},
    {"value": "applications", "label": "Applications Report", "noun": "Applications", "description": "Export all applications with student and program details"},
    {"value": "payments", "label": "Payments Report", "noun": "Payments", "description": "Export all payment transactions"},
    {"value": "commissions", "label": "Commissions Report", "noun": "Commissions", "description": "Export all commission records"},
    {"value": "universities", "label": "Universities Report", "noun": "Universities", "description": "Export all partner universities"},
    {"value": "programs", "label": "Courses Report", "noun": "Courses", "description": "Export all academic courses"},
]
_OPTIONS_BY_TYPE = {option["value"]: option for option in REPORT_OPTIONS}


# ============================================================
# CSV
# ============================================================


def _csv_field(value: Any) -> str:
    if value is None:
        return ""
    text = str(value)
    if isinstance(value, str) and any(ch in text for ch in (",", '"', "\n", "\r")):
        return '"' + text.replace('"', '""') + '"'
    return text


def convert_to_csv(rows: Iterable[Mapping[str, Any]], headers: list[str]) -> str:
    """Render ``rows`` as CSV text, one column per header.

    Fields containing commas, quotes or line breaks are quoted with inner
    quotes doubled; missing values become empty fields. With no rows the
    result is just the header line plus a newline.
    """
    lines = [",".join(headers)]
    for row in rows:
        lines.append(",".join(_csv_field(row.get(header)) for header in headers))
    if len(lines) == 1:
        return lines[0] + "\n"
    return "\n".join(lines)


def report_filename(entity: str, today: Optional[date] = None) -> str:
    return f"{entity}-report-{(today or date.today()):%Y-%m-%d}.csv"


def success_message(report_type: str) -> str:
    return f"{_OPTIONS_BY_TYPE[report_type]['noun']} report exported successfully"


def failure_message(report_type: str) -> str:
    return f"Failed to export {report_type} report"


def _timestamp(value: Optional[datetime]) -> str:
    return value.strftime(TIMESTAMP_FORMAT) if value else ""


def _money(cents: Optional[int]) -> str:
    return f"{(cents or 0) / 100:.2f}"


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _student_user(student: Optional[Student]) -> Optional[User]:
    return student.user if student is not None else None


# ============================================================
# ROW BUILDERS
# ============================================================


def _scoped(stmt, column, tenant_id: Optional[uuid.UUID]):
    return stmt.where(column == tenant_id) if tenant_id is not None else stmt


def _user_rows(db: Session, tenant_id: Optional[uuid.UUID]) -> list[dict[str, Any]]:
    stmt = _scoped(select(User).order_by(User.created_at.desc()), User.tenant_id, tenant_id)
    return [
        {
            "id": str(user.id),
            "full_name": user.full_name,
            "email": user.email,
            "role": user.role,
            "active": _yes_no(user.active),
            "created_at": _timestamp(user.created_at),
        }
        for user in db.scalars(stmt)
    ]


def _application_rows(db: Session, tenant_id: Optional[uuid.UUID]) -> list[dict[str, Any]]:
    stmt = _scoped(
        select(Application)
        .options(
            joinedload(Application.student).joinedload(Student.user),
            joinedload(Application.program).joinedload(Program.university),
        )
        .order_by(Application.created_at.desc()),
        Application.tenant_id,
        tenant_id,
    )
    rows = []
    for app in db.scalars(stmt).unique():
        user = _student_user(app.student)
        program = app.program
        university = program.university if program else None
        rows.append(
            {
                "id": str(app.id),
                "student_name": (user.full_name if user else None) or MISSING,
                "student_email": (user.email if user else None) or MISSING,
                "program_name": (program.name if program else None) or MISSING,
                "program_level": (program.level if program else None) or MISSING,
                "university": (university.name if university else None) or MISSING,
                "country": (university.country if university else None) or MISSING,
                "status": app.status,
                "intake": f"{app.intake_month}/{app.intake_year}",
                "created_at": _timestamp(app.created_at),
            }
        )
    return rows


def _payment_rows(db: Session, tenant_id: Optional[uuid.UUID]) -> list[dict[str, Any]]:
    stmt = _scoped(
        select(Payment)
        .options(joinedload(Payment.application).joinedload(Application.student).joinedload(Student.user))
        .order_by(Payment.created_at.desc()),
        Payment.tenant_id,
        tenant_id,
    )
    rows = []
    for payment in db.scalars(stmt).unique():
        user = _student_user(payment.application.student if payment.application else None)
        rows.append(
            {
                "id": str(payment.id),
                "student_name": (user.full_name if user else None) or MISSING,
                "student_email": (user.email if user else None) or MISSING,
                "amount": _money(payment.amount_cents),
                "currency": payment.currency,
                "status": payment.status,
                "purpose": payment.purpose,
                "created_at": _timestamp(payment.created_at),
            }
        )
    return rows


def _commission_rows(db: Session, tenant_id: Optional[uuid.UUID]) -> list[dict[str, Any]]:
    stmt = _scoped(
        select(Commission)
        .options(
            joinedload(Commission.agent).joinedload(Agent.user),
            joinedload(Commission.application).joinedload(Application.student).joinedload(Student.user),
        )
        .order_by(Commission.created_at.desc()),
        Commission.tenant_id,
        tenant_id,
    )
    rows = []
    for commission in db.scalars(stmt).unique():
        agent_user = commission.agent.user if commission.agent else None
        student_user = _student_user(commission.application.student if commission.application else None)
        rows.append(
            {
                "id": str(commission.id),
                "agent_name": (agent_user.full_name if agent_user else None) or MISSING,
                "agent_email": (agent_user.email if agent_user else None) or MISSING,
                "student_name": (student_user.full_name if student_user else None) or MISSING,
                "level": commission.level,
                "rate_percent": commission.rate_percent,
                "amount": _money(commission.amount_cents),
                "currency": commission.currency,
                "status": commission.status,
                "created_at": _timestamp(commission.created_at),
            }
        )
    return rows


def _university_rows(db: Session, tenant_id: Optional[uuid.UUID]) -> list[dict[str, Any]]:
    stmt = _scoped(select(University).order_by(University.name.asc()), University.tenant_id, tenant_id)
    return [
        {
            "id": str(uni.id),
            "name": uni.name,
            "country": uni.country,
            "city": uni.city or MISSING,
            "website": uni.website or MISSING,
            "active": _yes_no(uni.active),
            "created_at": _timestamp(uni.created_at),
        }
        for uni in db.scalars(stmt)
    ]


def _program_rows(db: Session, tenant_id: Optional[uuid.UUID]) -> list[dict[str, Any]]:
    stmt = _scoped(
        select(Program).options(joinedload(Program.university)).order_by(Program.created_at.desc()),
        Program.tenant_id,
        tenant_id,
    )
    rows = []
    for program in db.scalars(stmt).unique():
        university = program.university
        tuition = MISSING
        if program.tuition_amount is not None:
            tuition = f"{program.tuition_currency or ''} {program.tuition_amount}".strip()
        rows.append(
            {
                "id": str(program.id),
                "name": program.name,
                "level": program.level,
                "discipline": program.discipline,
                "duration_months": program.duration_months,
                "tuition": tuition,
                "university": (university.name if university else None) or MISSING,
                "country": (university.country if university else None) or MISSING,
                "active": _yes_no(program.active),
                "created_at": _timestamp(program.created_at),
            }
        )
    return rows


_ROW_BUILDERS: dict[str, Callable[[Session, Optional[uuid.UUID]], list[dict[str, Any]]]] = {
    "users": _user_rows,
    "applications": _application_rows,
    "payments": _payment_rows,
    "commissions": _commission_rows,
    "universities": _university_rows,
    "programs": _program_rows,
}


def fetch_report_rows(db: Session, report_type: str, tenant_id: Optional[uuid.UUID] = None) -> list[dict[str, Any]]:
    if report_type not in _ROW_BUILDERS:
        raise ValueError(f"Unknown report type: {report_type}")
    return _ROW_BUILDERS[report_type](db, tenant_id)


def export_report(
    db: Session,
    report_type: str,
    tenant_id: Optional[uuid.UUID] = None,
    today: Optional[date] = None,
) -> tuple[str, str]:
    """Build ``(filename, csv_text)`` for one report. Nothing is written on failure."""
    if report_type not in REPORT_HEADERS:
        raise ValueError(f"Unknown report type: {report_type}")
    try:
        rows = fetch_report_rows(db, report_type, tenant_id)
    except Exception as exc:
        logger.exception("Error exporting %s report", report_type)
        raise PortalError("Error", failure_message(report_type)) from exc
    csv_text = convert_to_csv(rows, REPORT_HEADERS[report_type])
    logger.info("Exported %d %s rows", len(rows), report_type)
    return report_filename(report_type, today), csv_text


# ============================================================
# DASHBOARD STATS
# ============================================================


def _count(db: Session, model, tenant_column, tenant_id: Optional[uuid.UUID], *criteria) -> int:
    stmt = select(func.count()).select_from(model)
    if tenant_id is not None:
        stmt = stmt.where(tenant_column == tenant_id)
    for criterion in criteria:
        stmt = stmt.where(criterion)
    return int(db.scalar(stmt) or 0)


def tenant_summary(db: Session, tenant_id: Optional[uuid.UUID] = None) -> dict[str, Any]:
    """Headline numbers for the staff dashboard. Each figure is its own query."""
    revenue = select(func.coalesce(func.sum(Payment.amount_cents), 0)).where(Payment.status == "succeeded")
    if tenant_id is not None:
        revenue = revenue.where(Payment.tenant_id == tenant_id)
    return {
        "students": _count(db, Student, Student.tenant_id, tenant_id),
        "agents": _count(db, Agent, Agent.tenant_id, tenant_id),
        "universities": _count(db, University, University.tenant_id, tenant_id, University.active.is_(True)),
        "programs": _count(db, Program, Program.tenant_id, tenant_id, Program.active.is_(True)),
        "applications": _count(db, Application, Application.tenant_id, tenant_id),
        "submitted_applications": _count(
            db, Application, Application.tenant_id, tenant_id, Application.status == "submitted"
        ),
        "enrolled": _count(db, Application, Application.tenant_id, tenant_id, Application.status == "enrolled"),
        "revenue": _money(db.scalar(revenue)),
    }


def application_status_breakdown(db: Session, tenant_id: Optional[uuid.UUID] = None) -> pd.Series:
    stmt = select(Application.status)
    if tenant_id is not None:
        stmt = stmt.where(Application.tenant_id == tenant_id)
    counts = Counter(db.scalars(stmt))
    return pd.Series(dict(counts.most_common()), dtype="int64")


def applications_frame(rows: list[dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=REPORT_HEADERS["applications"])
