from __future__ import annotations

import pytest
from sqlalchemy import select

from auth import sign_in
from errors import FormValidationError
from models import Agent, AuditLog, Student, User
from schemas import password_policy_error
from signup import (
    SignupForm,
    SignupWizard,
    generate_invite_code,
    is_username_available,
    register_user,
)


def valid_form(**overrides) -> SignupForm:
    values = {
        "role": "student",
        "full_name": "Chidi Okafor",
        "phone": "+2348011111111",
        "country": "Nigeria",
        "username": "Chidi_O",
        "email": "Chidi@Example.com",
        "password": "Secur3!pass",
        "confirm_password": "Secur3!pass",
    }
    values.update(overrides)
    return SignupForm(**values)


def test_password_policy_messages() -> None:
    assert password_policy_error("Ab1!") == "Password must be at least 8 characters"
    assert password_policy_error("A" * 129) == "Password must be less than 128 characters"
    assert password_policy_error("lowercase1!") == "Password must contain at least one uppercase letter"
    assert password_policy_error("UPPERCASE1!") == "Password must contain at least one lowercase letter"
    assert password_policy_error("NoNumbers!") == "Password must contain at least one number"
    assert password_policy_error("NoSpecial1") == "Password must contain at least one special character"
    assert password_policy_error("Secur3!pass") is None


def test_wizard_steps_validate_before_advancing() -> None:
    wizard = SignupWizard(SignupForm())
    assert wizard.title == "Choose Your Role"
    assert wizard.progress_percent() == 33

    with pytest.raises(FormValidationError) as no_role:
        wizard.next()
    assert no_role.value.title == "Role required"
    assert wizard.step == 1

    wizard.form.role = "agent"
    wizard.next()
    assert wizard.step == 2

    wizard.form.full_name = "Chidi Okafor"
    with pytest.raises(FormValidationError) as no_phone:
        wizard.next()
    assert no_phone.value.title == "Phone required"

    wizard.form.phone = "+2348011111111"
    wizard.form.country = "Nigeria"
    wizard.next()
    assert wizard.is_final_step() is True
    assert wizard.progress_percent() == 100

    wizard.back()
    assert wizard.step == 2


def test_credentials_step_errors() -> None:
    taken = {"chidi_o"}
    wizard = SignupWizard(valid_form(), username_available=lambda name: name.lower() not in taken)

    def title_for(**changes) -> str:
        for key, value in changes.items():
            setattr(wizard.form, key, value)
        with pytest.raises(FormValidationError) as excinfo:
            wizard.validate_step(3)
        wizard.form = valid_form(username="fresh_name")
        return excinfo.value.title

    assert title_for(username="ab") == "Username too short"
    assert title_for(username="Chidi_O") == "Username unavailable"
    assert title_for(email="not-an-email") == "Invalid email"
    assert title_for(password="weakpass", confirm_password="weakpass") == "Weak password"
    assert title_for(confirm_password="Different1!") == "Passwords do not match"

    wizard.validate_step(3)


def test_register_student_creates_profile_and_audit(db) -> None:
    user = register_user(db, valid_form())
    db.commit()

    assert user.email == "chidi@example.com"
    assert user.username == "chidi_o"
    assert user.role == "student"
    assert db.scalar(select(Student).where(Student.user_id == user.id)).current_country == "Nigeria"
    audit = db.scalar(select(AuditLog).where(AuditLog.user_id == user.id))
    assert audit.action == "user_registered"

    ctx = sign_in(db, "CHIDI@example.com ", "Secur3!pass")
    assert ctx is not None and ctx.role == "student"
    assert sign_in(db, "chidi@example.com", "wrong") is None


def test_register_agent_gets_invite_code_and_referrer(db, users) -> None:
    user = register_user(db, valid_form(role="agent", username="new_agent", email="agent2@example.com"), referrer_id=users["agent"].id)
    db.commit()

    agent = db.scalar(select(Agent).where(Agent.user_id == user.id))
    assert agent.invite_code.startswith("NEW_AG")
    assert len(agent.invite_code) == 12
    assert user.referrer_id == users["agent"].id


def test_register_rejects_duplicates(db) -> None:
    register_user(db, valid_form())
    db.commit()

    with pytest.raises(FormValidationError) as dup_email:
        register_user(db, valid_form(username="another_one"))
    assert dup_email.value.description == "An account with this email already exists."

    with pytest.raises(FormValidationError) as dup_username:
        register_user(db, valid_form(email="other@example.com", username="CHIDI_O"))
    assert dup_username.value.field_errors == {"username": "taken"}

    assert db.scalar(select(User).where(User.email == "other@example.com")) is None


def test_register_surfaces_validation_messages(db) -> None:
    with pytest.raises(FormValidationError) as bad_username:
        register_user(db, valid_form(username="chidi-o"))
    assert bad_username.value.title == "Signup failed"
    assert bad_username.value.description == "Username can only contain letters, numbers and underscores"
    assert "username" in bad_username.value.field_errors

    with pytest.raises(FormValidationError) as mismatch:
        register_user(db, valid_form(confirm_password="Other1!pass"))
    assert mismatch.value.description == "Passwords do not match"


def test_username_availability_is_case_insensitive(db, users) -> None:
    assert is_username_available(db, "DEMO_AGENT") is False
    assert is_username_available(db, "brand_new") is True


def test_generate_invite_code_prefix() -> None:
    code = generate_invite_code("jo.hn")
    assert code.startswith("JOHN")
    assert len(code) == 10
