from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select

from errors import FormValidationError, PermissionDenied
from models import Student
from profiles import (
    calculate_profile_completion,
    missing_required_documents,
    profile_completion_for,
    update_agent_details,
    update_profile,
    update_student_details,
)


def test_basic_profile_completion() -> None:
    full = {"full_name": "Ada", "email": "ada@example.com", "phone": "1", "country": "NG", "avatar_url": "a.png"}
    assert calculate_profile_completion(full) == 100
    assert calculate_profile_completion({"full_name": "Ada", "email": "ada@example.com", "phone": "  "}) == 40
    assert calculate_profile_completion({}) == 0


def test_student_profile_completion_counts_role_fields() -> None:
    profile = {"full_name": "Ada", "email": "ada@example.com", "phone": "1", "country": "NG"}
    role_data = {"date_of_birth": date(2001, 4, 2), "nationality": "Nigerian", "education_history": []}

    assert calculate_profile_completion(profile, "student", role_data) == 60
    assert calculate_profile_completion(profile, "student", None) == 80


def test_agent_profile_completion_counts_contact_twice() -> None:
    profile = {"full_name": "Ade", "email": "ade@example.com", "phone": "1", "country": "NG"}
    role_data = {"company_name": "Ade Consult", "verification_document_url": None}

    assert calculate_profile_completion(profile, "agent", role_data) == 78


def test_missing_required_documents_accepts_alternates() -> None:
    missing = missing_required_documents(["Passport", "ielts", "personal_statement"])
    assert [doc.type for doc in missing] == ["passport_photo", "transcript", "cv"]
    assert len(missing_required_documents([])) == 6


def test_profile_completion_for_seeded_student(db, users) -> None:
    # name, email and country are filled; nationality on the student side.
    assert profile_completion_for(db, users["student"]) == 40
    assert profile_completion_for(db, users["admin"]) == 60


def test_update_profile_only_touches_editable_fields(db, users, contexts) -> None:
    user = update_profile(db, contexts["student"], {"phone": " +234 800 ", "email": "hijack@example.com", "avatar_url": ""})

    assert user.phone == "+234 800"
    assert user.avatar_url is None
    assert user.email == "student@demo.unidoxia.com"

    with pytest.raises(FormValidationError) as nothing:
        update_profile(db, contexts["student"], {"role": "admin"})
    assert nothing.value.title == "Nothing to update"

    with pytest.raises(FormValidationError) as blank_name:
        update_profile(db, contexts["student"], {"full_name": "   "})
    assert blank_name.value.title == "Name required"


def test_update_student_details(db, users, contexts) -> None:
    student = update_student_details(
        db, contexts["student"], {"date_of_birth": "2001-04-02", "passport_number": "A1234567", "home_address": ""}
    )
    assert student.date_of_birth == date(2001, 4, 2)
    assert student.passport_number == "A1234567"
    assert student.home_address is None

    with pytest.raises(FormValidationError) as bad_date:
        update_student_details(db, contexts["student"], {"date_of_birth": "02/04/2001"})
    assert bad_date.value.field_errors == {"date_of_birth": "invalid"}

    with pytest.raises(PermissionDenied):
        update_student_details(db, contexts["agent"], {"nationality": "Ghanaian"})

    stored = db.scalar(select(Student).where(Student.user_id == users["student"].id))
    assert stored.nationality == "Nigerian"


def test_update_agent_details(db, contexts) -> None:
    agent = update_agent_details(db, contexts["agent"], {"company_name": " Bright Futures Ltd "})
    assert agent.company_name == "Bright Futures Ltd"

    with pytest.raises(PermissionDenied):
        update_agent_details(db, contexts["student"], {"company_name": "x"})
