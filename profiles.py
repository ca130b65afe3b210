from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from applications import log_action
from auth import SessionContext
from errors import FormValidationError, NotFoundError
from models import Agent, Student, User

logger = logging.getLogger(__name__)

BASIC_PROFILE_FIELDS = ("full_name", "email", "phone", "country", "avatar_url")
STUDENT_PROFILE_FIELDS = ("date_of_birth", "nationality", "passport_number", "address", "education_history")
AGENT_PROFILE_FIELDS = ("company_name", "verification_document_url")

UPDATABLE_PROFILE_FIELDS = {"full_name", "phone", "country", "avatar_url"}
UPDATABLE_STUDENT_FIELDS = {
    "date_of_birth",
    "nationality",
    "passport_number",
    "current_country",
    "whatsapp_number",
    "home_address",
    "correspondent_address",
}
UPDATABLE_AGENT_FIELDS = {"company_name", "verification_document_url"}


def _is_filled(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (dict, list, tuple, set)):
        return len(value) > 0
    return bool(value)


def calculate_profile_completion(
    profile: Mapping[str, Any],
    role_type: Optional[str] = None,
    role_data: Optional[Mapping[str, Any]] = None,
) -> int:
    """Percentage of filled profile fields, rounded.

    Basic fields always count; student or agent fields are added when
    ``role_data`` is supplied for that role. Agents' phone and country count
    a second time on the agent side.
    """
    values = [profile.get(name) for name in BASIC_PROFILE_FIELDS]
    if role_type == "student" and role_data:
        values += [role_data.get(name) for name in STUDENT_PROFILE_FIELDS]
    elif role_type == "agent" and role_data:
        values += [role_data.get(name) for name in AGENT_PROFILE_FIELDS]
        values += [profile.get("phone"), profile.get("country")]
    if not values:
        return 0
    completed = sum(1 for value in values if _is_filled(value))
    return round(completed / len(values) * 100)


def profile_completion_for(db: Session, user: User) -> int:
    profile = {name: getattr(user, name) for name in BASIC_PROFILE_FIELDS}
    if user.role == "student":
        student = db.scalar(select(Student).where(Student.user_id == user.id))
        if student is not None:
            role_data = {
                "date_of_birth": student.date_of_birth,
                "nationality": student.nationality,
                "passport_number": student.passport_number,
                "address": student.home_address,
                "education_history": list(student.education_records),
            }
            return calculate_profile_completion(profile, "student", role_data)
    if user.role == "agent":
        agent = db.scalar(select(Agent).where(Agent.user_id == user.id))
        if agent is not None:
            role_data = {
                "company_name": agent.company_name,
                "verification_document_url": agent.verification_document_url,
            }
            return calculate_profile_completion(profile, "agent", role_data)
    return calculate_profile_completion(profile)


@dataclass(frozen=True)
class RequiredStudentDocument:
    type: str
    label: str
    acceptable_types: tuple[str, ...]


REQUIRED_STUDENT_DOCUMENTS: list[RequiredStudentDocument] = [
    RequiredStudentDocument("passport", "Passport", ("passport",)),
    RequiredStudentDocument("passport_photo", "Passport Photo", ("passport_photo",)),
    RequiredStudentDocument("transcript", "Academic Transcript", ("transcript",)),
    RequiredStudentDocument("sop", "Statement of Purpose", ("sop", "personal_statement")),
    RequiredStudentDocument("cv", "CV / Resume", ("cv",)),
    RequiredStudentDocument(
        "english_proficiency",
        "Statement of English Proficiency",
        ("english_proficiency", "ielts", "toefl", "english_test"),
    ),
]


def missing_required_documents(document_types: Iterable[str]) -> list[RequiredStudentDocument]:
    uploaded = {doc_type.lower() for doc_type in document_types}
    return [
        requirement
        for requirement in REQUIRED_STUDENT_DOCUMENTS
        if not any(acceptable in uploaded for acceptable in requirement.acceptable_types)
    ]


def _whitelisted(changes: Mapping[str, Any], allowed: set[str]) -> dict[str, Any]:
    cleaned = {}
    for key, value in changes.items():
        if key not in allowed:
            continue
        cleaned[key] = value.strip() if isinstance(value, str) else value
    if not cleaned:
        raise FormValidationError("Nothing to update", "No editable fields were provided.")
    return cleaned


def update_profile(db: Session, ctx: SessionContext, changes: Mapping[str, Any]) -> User:
    cleaned = _whitelisted(changes, UPDATABLE_PROFILE_FIELDS)
    if "full_name" in cleaned and not cleaned["full_name"]:
        raise FormValidationError("Name required", field_errors={"full_name": "required"})
    user = db.get(User, ctx.user_id)
    if user is None:
        raise NotFoundError("Profile not found", "Please sign in again.")
    for key, value in cleaned.items():
        if key != "full_name":
            value = value or None
        setattr(user, key, value)
    log_action(db, ctx.user_id, "profile_updated", {"fields": sorted(cleaned)})
    db.flush()
    return user


def update_student_details(db: Session, ctx: SessionContext, changes: Mapping[str, Any]) -> Student:
    ctx.require_role("student")
    cleaned = _whitelisted(changes, UPDATABLE_STUDENT_FIELDS)
    student = db.scalar(select(Student).where(Student.user_id == ctx.user_id))
    if student is None:
        raise NotFoundError("Profile Required", "Please complete your student profile first.")
    if "date_of_birth" in cleaned and isinstance(cleaned["date_of_birth"], str):
        raw = cleaned["date_of_birth"]
        try:
            cleaned["date_of_birth"] = date.fromisoformat(raw) if raw else None
        except ValueError as exc:
            raise FormValidationError("Invalid date", "Use the format YYYY-MM-DD.", {"date_of_birth": "invalid"}) from exc
    for key, value in cleaned.items():
        setattr(student, key, value if value != "" else None)
    log_action(db, ctx.user_id, "student_details_updated", {"fields": sorted(cleaned)})
    db.flush()
    return student


def update_agent_details(db: Session, ctx: SessionContext, changes: Mapping[str, Any]) -> Agent:
    ctx.require_role("agent")
    cleaned = _whitelisted(changes, UPDATABLE_AGENT_FIELDS)
    agent = db.scalar(select(Agent).where(Agent.user_id == ctx.user_id))
    if agent is None:
        raise NotFoundError("Agent profile not found", "Please contact support.")
    for key, value in cleaned.items():
        setattr(agent, key, value or None)
    log_action(db, ctx.user_id, "agent_details_updated", {"fields": sorted(cleaned)})
    db.flush()
    return agent
