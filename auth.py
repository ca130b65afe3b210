from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.orm import Session

from errors import PermissionDenied
from models import DEFAULT_TENANT_ID, Agent, User

logger = logging.getLogger(__name__)

AGENT_FLOW_ROLES = {"agent", "staff", "admin"}


@dataclass(frozen=True)
class SessionContext:
    """Who is acting. Built once at sign-in and handed to every service call."""

    user_id: uuid.UUID
    role: str
    tenant_id: uuid.UUID
    email: str
    full_name: str = ""
    agent_id: Optional[uuid.UUID] = None

    @property
    def is_agent_flow(self) -> bool:
        return self.role in AGENT_FLOW_ROLES

    @property
    def submitted_by_agent(self) -> bool:
        return self.role == "agent" and self.agent_id is not None

    def require_role(self, *roles: str) -> None:
        if self.role not in roles:
            raise PermissionDenied(
                "Permission denied",
                f"This action requires one of: {', '.join(roles)}.",
            )

    def as_state(self) -> dict:
        return {
            "user_id": str(self.user_id),
            "role": self.role,
            "tenant_id": str(self.tenant_id),
            "email": self.email,
            "full_name": self.full_name,
            "agent_id": str(self.agent_id) if self.agent_id else None,
        }

    @classmethod
    def from_state(cls, state: dict) -> "SessionContext":
        agent_id = state.get("agent_id")
        return cls(
            user_id=uuid.UUID(state["user_id"]),
            role=state["role"],
            tenant_id=uuid.UUID(state["tenant_id"]),
            email=state["email"],
            full_name=state.get("full_name") or "",
            agent_id=uuid.UUID(agent_id) if agent_id else None,
        )


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    user = db.scalar(select(User).where(User.email == email.strip().lower()))
    if not user or not user.password_hash or not user.active:
        return None
    if not verify_password(password, user.password_hash):
        logger.info("Rejected sign-in for %s", user.email)
        return None
    return user


def get_user_by_id(db: Session, user_id: str | uuid.UUID) -> Optional[User]:
    return db.get(User, uuid.UUID(str(user_id)))


def build_session_context(db: Session, user: User) -> SessionContext:
    agent_id = None
    if user.role == "agent":
        agent_id = db.scalar(select(Agent.id).where(Agent.user_id == user.id))
    return SessionContext(
        user_id=user.id,
        role=user.role,
        tenant_id=user.tenant_id or DEFAULT_TENANT_ID,
        email=user.email,
        full_name=user.full_name,
        agent_id=agent_id,
    )


def sign_in(db: Session, email: str, password: str) -> Optional[SessionContext]:
    user = authenticate_user(db, email, password)
    if user is None:
        return None
    return build_session_context(db, user)
