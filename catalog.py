from __future__ import annotations

import logging
import time
import uuid
from datetime import date
from typing import Callable, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from errors import PortalError
from models import Intake, Program
from schemas import IntakeOption, ProgramDetails, ProgramSummary

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
SEARCH_DEBOUNCE_SECONDS = 0.3


def _as_uuid(value: str | uuid.UUID) -> Optional[uuid.UUID]:
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except ValueError:
        return None


def search_programs(db: Session, query: str = "", limit: int = SEARCH_LIMIT) -> list[ProgramSummary]:
    stmt = (
        select(Program)
        .options(joinedload(Program.university))
        .where(Program.active.is_(True))
        .order_by(Program.name)
        .limit(limit)
    )
    query = (query or "").strip()
    if query:
        pattern = f"%{query}%"
        stmt = stmt.where(or_(Program.name.ilike(pattern), Program.discipline.ilike(pattern)))
    return [ProgramSummary.model_validate(program) for program in db.scalars(stmt).unique()]


def get_program(db: Session, program_id: str | uuid.UUID) -> Optional[ProgramSummary]:
    program = _load_program(db, program_id)
    return ProgramSummary.model_validate(program) if program else None


def get_program_details(db: Session, program_id: str | uuid.UUID) -> Optional[ProgramDetails]:
    program = _load_program(db, program_id)
    if program is None:
        return None
    details = ProgramDetails.model_validate(program)
    if program.university is not None:
        details.university_website = program.university.website
    return details


def _load_program(db: Session, program_id: str | uuid.UUID) -> Optional[Program]:
    key = _as_uuid(program_id)
    if key is None:
        return None
    return db.scalar(select(Program).options(joinedload(Program.university)).where(Program.id == key))


def list_future_intakes(db: Session, program_id: str | uuid.UUID, today: Optional[date] = None) -> list[IntakeOption]:
    key = _as_uuid(program_id)
    if key is None:
        return []
    stmt = (
        select(Intake)
        .where(Intake.program_id == key, Intake.app_deadline >= (today or date.today()))
        .order_by(Intake.start_date.asc())
    )
    return [IntakeOption.model_validate(intake) for intake in db.scalars(stmt)]


class ProgramCatalog:
    """Catalog queries that open their own session per call."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def _run(self, title: str, fn: Callable[[Session], object]):
        try:
            with self.session_factory() as db:
                return fn(db)
        except SQLAlchemyError as exc:
            logger.exception("Catalog query failed")
            raise PortalError(title, "Please try again in a moment.") from exc

    def search_programs(self, query: str) -> list[ProgramSummary]:
        return self._run("Unable to load courses", lambda db: search_programs(db, query))

    def get_program(self, program_id: str) -> Optional[ProgramSummary]:
        return self._run("Unable to load selected course", lambda db: get_program(db, program_id))

    def get_program_details(self, program_id: str) -> Optional[ProgramDetails]:
        return self._run("Unable to load course details", lambda db: get_program_details(db, program_id))

    def list_intakes(self, program_id: str, today: date) -> list[IntakeOption]:
        return self._run("Unable to load intakes", lambda db: list_future_intakes(db, program_id, today))


class SearchDebouncer:
    """Holds back a search query until it has stopped changing for ``delay`` seconds."""

    def __init__(self, delay: float = SEARCH_DEBOUNCE_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.delay = delay
        self.clock = clock
        self._pending: Optional[str] = None
        self._changed_at = 0.0
        self._released: Optional[str] = None
        self._has_released = False

    def push(self, query: str) -> None:
        if self._pending == query:
            return
        if self._pending is None and self._has_released and self._released == query:
            return
        self._pending = query
        self._changed_at = self.clock()

    def poll(self) -> Optional[str]:
        if self._pending is None:
            return None
        if self.clock() - self._changed_at < self.delay:
            return None
        query, self._pending = self._pending, None
        self._released = query
        self._has_released = True
        return query
