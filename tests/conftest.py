from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import bcrypt
import pytest
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import seed
from auth import SessionContext, build_session_context
from db import build_engine, init_schema
from models import User

TODAY = date(2026, 1, 10)


def _fast_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


@pytest.fixture()
def engine():
    engine = build_engine("sqlite+pysqlite://")
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def users(db, monkeypatch) -> dict[str, User]:
    monkeypatch.setattr(seed, "hash_password", _fast_hash)
    seeded = seed.seed_default_users(db)
    db.commit()
    return seeded


@pytest.fixture()
def catalog_rows(db) -> int:
    added = seed.seed_catalog(db, today=TODAY)
    db.commit()
    return added


@pytest.fixture()
def contexts(db, users) -> dict[str, SessionContext]:
    return {role: build_session_context(db, user) for role, user in users.items()}
