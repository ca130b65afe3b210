from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from applications import log_action
from auth import hash_password
from errors import FormValidationError
from models import DEFAULT_TENANT_ID, Agent, Student, Tenant, User
from referrals import format_referral_username
from schemas import SignupRequest, password_policy_error

logger = logging.getLogger(__name__)

SIGNUP_ROLES = ("student", "agent", "partner")
SIGNUP_STEP_TITLES = {1: "Choose Your Role", 2: "Personal Information", 3: "Account Credentials"}
ROLE_LABELS = {"student": "Student", "agent": "Agent", "partner": "University/Partner"}
ROLE_DESCRIPTIONS = {
    "student": "Apply to universities and track applications",
    "agent": "Help students and earn commissions",
    "partner": "Showcase programmes and scholarships",
}


@dataclass
class SignupForm:
    role: str = ""
    full_name: str = ""
    phone: str = ""
    country: str = ""
    username: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = ""
    referrer_username: Optional[str] = None


class SignupWizard:
    total_steps = 3

    def __init__(
        self,
        form: Optional[SignupForm] = None,
        username_available: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.form = form or SignupForm()
        self.step = 1
        self.username_available = username_available

    @property
    def title(self) -> str:
        return SIGNUP_STEP_TITLES[self.step]

    def progress_percent(self) -> int:
        return round(self.step / self.total_steps * 100)

    def validate_step(self, step: Optional[int] = None) -> None:
        step = step or self.step
        form = self.form
        if step == 1:
            if form.role not in SIGNUP_ROLES:
                raise FormValidationError("Role required", "Select your account type.", {"role": "required"})
        elif step == 2:
            if not form.full_name.strip():
                raise FormValidationError("Name required", field_errors={"full_name": "required"})
            if not form.phone.strip():
                raise FormValidationError("Phone required", field_errors={"phone": "required"})
            if not form.country:
                raise FormValidationError("Country required", field_errors={"country": "required"})
        elif step == 3:
            username = form.username.strip()
            if not username:
                raise FormValidationError("Username required", field_errors={"username": "required"})
            if len(username) < 3:
                raise FormValidationError(
                    "Username too short", "Username must be at least 3 characters.", {"username": "too_short"}
                )
            if self.username_available is not None and not self.username_available(username):
                raise FormValidationError(
                    "Username unavailable", "This username is already taken. Try another one.", {"username": "taken"}
                )
            if "@" not in form.email:
                raise FormValidationError("Invalid email", field_errors={"email": "invalid"})
            policy_error = password_policy_error(form.password)
            if policy_error:
                raise FormValidationError("Weak password", policy_error, {"password": "weak"})
            if form.password != form.confirm_password:
                raise FormValidationError("Passwords do not match", field_errors={"confirm_password": "mismatch"})

    def next(self) -> None:
        """Validate the current step and move forward; raises FormValidationError."""
        self.validate_step()
        if self.step < self.total_steps:
            self.step += 1

    def back(self) -> None:
        if self.step > 1:
            self.step -= 1

    def is_final_step(self) -> bool:
        return self.step == self.total_steps


def ensure_default_tenant(db: Session) -> Tenant:
    tenant = db.get(Tenant, DEFAULT_TENANT_ID)
    if tenant is None:
        tenant = Tenant(id=DEFAULT_TENANT_ID, name="UniDoxia", slug="unidoxia")
        db.add(tenant)
        db.flush()
    return tenant


def is_username_available(db: Session, username: str) -> bool:
    normalized = username.strip().lower()
    return db.scalar(select(User.id).where(func.lower(User.username) == normalized)) is None


def generate_invite_code(username: str) -> str:
    prefix = format_referral_username(username)[:6].upper()
    return f"{prefix}{secrets.token_hex(3).upper()}"


def register_user(db: Session, form: SignupForm, referrer_id: Optional[uuid.UUID] = None) -> User:
    try:
        request = SignupRequest(
            role=form.role,
            full_name=form.full_name,
            phone=form.phone,
            country=form.country,
            username=form.username,
            email=form.email,
            password=form.password,
            confirm_password=form.confirm_password,
            referrer_username=form.referrer_username,
        )
    except ValidationError as exc:
        errors = exc.errors()
        field_errors = {".".join(str(part) for part in err["loc"]) or "form": err["msg"] for err in errors}
        message = errors[0]["msg"].removeprefix("Value error, ") if errors else "Invalid signup details"
        raise FormValidationError("Signup failed", message, field_errors) from exc

    email = request.email.lower()
    if db.scalar(select(User.id).where(User.email == email)) is not None:
        raise FormValidationError("Signup failed", "An account with this email already exists.", {"email": "taken"})
    if not is_username_available(db, request.username):
        raise FormValidationError(
            "Signup failed", "This username is already taken. Try another one.", {"username": "taken"}
        )

    tenant = ensure_default_tenant(db)
    user = User(
        tenant_id=tenant.id,
        role=request.role.value,
        email=email,
        username=request.username,
        password_hash=hash_password(request.password),
        full_name=request.full_name,
        phone=request.phone,
        country=request.country,
        referrer_id=referrer_id,
    )
    db.add(user)
    db.flush()

    if user.role == "student":
        db.add(Student(user_id=user.id, tenant_id=tenant.id, current_country=request.country))
    elif user.role == "agent":
        db.add(Agent(user_id=user.id, tenant_id=tenant.id, invite_code=generate_invite_code(request.username)))

    log_action(db, user.id, "user_registered", {"role": user.role, "referrer_id": str(referrer_id) if referrer_id else None})
    db.flush()
    logger.info("Registered %s account %s", user.role, user.username)
    return user
