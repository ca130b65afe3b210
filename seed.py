from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from auth import hash_password
from models import (
    DEFAULT_TENANT_ID,
    Agent,
    Intake,
    Program,
    Student,
    StudentAssignment,
    University,
    User,
)
from signup import ensure_default_tenant, generate_invite_code

logger = logging.getLogger(__name__)

DEMO_USERS: list[dict[str, str]] = [
    {"role": "admin", "env": "UNIDOXIA_ADMIN", "email": "admin@demo.unidoxia.com", "password": "Admin123!", "username": "admin", "full_name": "Platform Admin"},
    {"role": "staff", "env": "UNIDOXIA_STAFF", "email": "staff@demo.unidoxia.com", "password": "Staff123!", "username": "staff", "full_name": "Admissions Staff"},
    {"role": "counselor", "env": "UNIDOXIA_COUNSELOR", "email": "counselor@demo.unidoxia.com", "password": "Counselor123!", "username": "counselor", "full_name": "Student Counselor"},
    {"role": "partner", "env": "UNIDOXIA_PARTNER", "email": "partner@demo.unidoxia.com", "password": "Partner123!", "username": "partner", "full_name": "University Partner"},
    {"role": "agent", "env": "UNIDOXIA_AGENT", "email": "agent@demo.unidoxia.com", "password": "Agent123!", "username": "demo_agent", "full_name": "Demo Agent"},
    {"role": "student", "env": "UNIDOXIA_STUDENT", "email": "student@demo.unidoxia.com", "password": "Student123!", "username": "demo_student", "full_name": "Demo Student"},
]


def _credentials(entry: dict[str, str]) -> tuple[str, str]:
    email = os.getenv(f"{entry['env']}_EMAIL", entry["email"]).strip().lower()
    password = os.getenv(f"{entry['env']}_PASSWORD", entry["password"])
    return email, password


def seed_default_users(db: Session) -> dict[str, User]:
    tenant = ensure_default_tenant(db)
    users: dict[str, User] = {}
    for entry in DEMO_USERS:
        email, password = _credentials(entry)
        user = db.scalar(select(User).where(User.email == email))
        if not user:
            user = User(
                tenant_id=tenant.id,
                role=entry["role"],
                email=email,
                username=entry["username"],
                password_hash=hash_password(password),
                full_name=entry["full_name"],
                country="Nigeria" if entry["role"] in {"student", "agent"} else "United Kingdom",
            )
            db.add(user)
            db.flush()
        users[entry["role"]] = user

    student_user = users["student"]
    student = db.scalar(select(Student).where(Student.user_id == student_user.id))
    if not student:
        student = Student(
            user_id=student_user.id,
            tenant_id=tenant.id,
            nationality="Nigerian",
            current_country="Nigeria",
        )
        db.add(student)
        db.flush()

    agent_user = users["agent"]
    if not db.scalar(select(Agent).where(Agent.user_id == agent_user.id)):
        db.add(
            Agent(
                user_id=agent_user.id,
                tenant_id=tenant.id,
                company_name="Demo Recruitment Ltd",
                invite_code=generate_invite_code(agent_user.username or "agent"),
            )
        )

    if not db.get(StudentAssignment, student.id):
        db.add(StudentAssignment(student_id=student.id, counselor_id=users["counselor"].id))
    db.flush()
    return users


def _intake_dates(today: date, months_ahead: int) -> tuple[date, date]:
    month_index = today.month - 1 + months_ahead
    start = date(today.year + month_index // 12, month_index % 12 + 1, 1)
    deadline_index = month_index - 3
    deadline = date(today.year + deadline_index // 12, deadline_index % 12 + 1, 15)
    return start, deadline


CATALOG: list[dict[str, Any]] = [
    {
        "name": "University of Leeds",
        "country": "United Kingdom",
        "city": "Leeds",
        "website": "https://www.leeds.ac.uk",
        "programs": [
            {"name": "BSc Business Management", "level": "bachelor", "discipline": "Business", "tuition_amount": 26750, "tuition_currency": "GBP", "duration_months": 36},
            {"name": "MSc Data Science and Analytics", "level": "master", "discipline": "Computer Science", "tuition_amount": 31750, "tuition_currency": "GBP", "duration_months": 12},
        ],
    },
    {
        "name": "University of Toronto",
        "country": "Canada",
        "city": "Toronto",
        "website": "https://www.utoronto.ca",
        "programs": [
            {"name": "Bachelor of Applied Science in Engineering", "level": "bachelor", "discipline": "Engineering", "tuition_amount": 67000, "tuition_currency": "CAD", "duration_months": 48},
            {"name": "Master of Public Health", "level": "master", "discipline": "Public Health", "tuition_amount": 48000, "tuition_currency": "CAD", "duration_months": 20},
        ],
    },
    {
        "name": "RMIT University",
        "country": "Australia",
        "city": "Melbourne",
        "website": "https://www.rmit.edu.au",
        "programs": [
            {"name": "Bachelor of Information Technology", "level": "bachelor", "discipline": "Information Technology", "tuition_amount": 38400, "tuition_currency": "AUD", "duration_months": 36},
            {"name": "Diploma of Accounting", "level": "diploma", "discipline": "Accounting", "tuition_amount": 17000, "tuition_currency": "AUD", "duration_months": 12},
        ],
    },
    {
        "name": "Technical University of Munich",
        "country": "Germany",
        "city": "Munich",
        "website": "https://www.tum.de",
        "programs": [
            {"name": "MSc Robotics, Cognition, Intelligence", "level": "master", "discipline": "Engineering", "tuition_amount": 6000, "tuition_currency": "EUR", "duration_months": 24},
            {"name": "PhD in Computer Science", "level": "doctorate", "discipline": "Computer Science", "tuition_amount": None, "tuition_currency": None, "duration_months": 48},
        ],
    },
]


def seed_catalog(db: Session, today: Optional[date] = None) -> int:
    """Insert the demo universities, programs and intakes once. Returns programs added."""
    count = db.scalar(select(func.count()).select_from(Program)) or 0
    if count > 0:
        return 0
    today = today or date.today()
    added = 0
    for uni_row in CATALOG:
        university = University(
            tenant_id=DEFAULT_TENANT_ID,
            name=uni_row["name"],
            country=uni_row["country"],
            city=uni_row["city"],
            website=uni_row["website"],
        )
        db.add(university)
        db.flush()
        for program_row in uni_row["programs"]:
            program = Program(tenant_id=DEFAULT_TENANT_ID, university_id=university.id, **program_row)
            db.add(program)
            db.flush()
            for months_ahead, term in [(5, "Autumn"), (11, "Spring"), (17, "Autumn")]:
                start, deadline = _intake_dates(today, months_ahead)
                db.add(
                    Intake(
                        program_id=program.id,
                        term=f"{term} {start.year}",
                        start_date=start,
                        app_deadline=deadline,
                    )
                )
            added += 1
    db.flush()
    logger.info("Seeded %d programs", added)
    return added


def seed_all(db: Session, today: Optional[date] = None) -> None:
    ensure_default_tenant(db)
    seed_default_users(db)
    seed_catalog(db, today)
