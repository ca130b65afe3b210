"""
Pydantic models for the boundaries of the portal.

Signup/login payloads are validated here, and loosely shaped catalog rows
(programs joined to universities, intakes) become explicit DTOs before they
reach the wizard.
"""

from __future__ import annotations

import re
import uuid
from datetime import date
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

USERNAME_PATTERN = re.compile(r"^[a-z0-9_]+$")

PASSWORD_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must contain at least one special character"),
]


def password_policy_error(password: str) -> Optional[str]:
    """First password-policy violation, or None when the password is acceptable."""
    if len(password) < 8:
        return "Password must be at least 8 characters"
    if len(password) > 128:
        return "Password must be less than 128 characters"
    for pattern, message in PASSWORD_RULES:
        if not pattern.search(password):
            return message
    return None


# ============================================================
# AUTH
# ============================================================


class SignupRole(str, Enum):
    student = "student"
    agent = "agent"
    partner = "partner"


class SignupRequest(BaseModel):
    role: SignupRole
    full_name: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., min_length=1, max_length=40)
    country: str = Field(..., min_length=1, max_length=100)
    username: str = Field(..., min_length=3, max_length=60)
    email: EmailStr
    password: str
    confirm_password: str
    referrer_username: Optional[str] = None

    @field_validator("full_name", "phone", "country")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("username")
    @classmethod
    def _username(cls, value: str) -> str:
        value = value.strip().lower()
        if not USERNAME_PATTERN.match(value):
            raise ValueError("Username can only contain letters, numbers and underscores")
        return value

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        error = password_policy_error(value)
        if error:
            raise ValueError(error)
        return value

    @model_validator(mode="after")
    def _passwords_match(self) -> "SignupRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


# ============================================================
# CATALOG
# ============================================================


class UniversityRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str = "Unknown University"
    city: str = "Unknown City"
    country: str = "Unknown Country"

    @model_validator(mode="before")
    @classmethod
    def _fill_blanks(cls, data: Any) -> Any:
        if data is None:
            return {}
        if not isinstance(data, dict):
            data = {key: getattr(data, key, None) for key in ("name", "city", "country")}
        return {key: value for key, value in data.items() if value}


class ProgramSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    level: str
    discipline: str
    tuition_amount: Optional[int] = None
    tuition_currency: str = ""
    university: UniversityRef = Field(default_factory=UniversityRef)

    @field_validator("tuition_currency", mode="before")
    @classmethod
    def _currency(cls, value: Optional[str]) -> str:
        return value or ""

    @field_validator("university", mode="before")
    @classmethod
    def _university(cls, value: Any) -> Any:
        return UniversityRef.model_validate(value)

    @property
    def label(self) -> str:
        return f"{self.name} ({self.level}) - {self.university.name}"


class IntakeOption(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    term: str
    start_date: date
    app_deadline: date

    @property
    def label(self) -> str:
        return f"{self.term} (starts {self.start_date:%b %Y}, apply by {self.app_deadline:%d %b %Y})"


class ProgramDetails(ProgramSummary):
    duration_months: Optional[int] = None
    university_website: Optional[str] = None

    @property
    def tuition_display(self) -> str:
        if self.tuition_amount is None:
            return "N/A"
        return f"{self.tuition_currency} {self.tuition_amount:,}".strip()
