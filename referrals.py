from __future__ import annotations

import re
from typing import Optional
from urllib.parse import quote

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from config import DEFAULT_SITE_URL, get_settings
from models import Agent, User

_USERNAME_STRIP = re.compile(r"[^a-z0-9_]")
# Same reserved set as JavaScript's encodeURIComponent.
_URI_COMPONENT_SAFE = "!~*'()"


def portal_origin(origin: Optional[str] = None) -> str:
    if origin:
        return origin.rstrip("/")
    return get_settings().site_url or DEFAULT_SITE_URL


def _signup_link(ref: Optional[str], origin: Optional[str]) -> str:
    if not ref:
        return ""
    return f"{portal_origin(origin)}/signup?ref={quote(ref, safe=_URI_COMPONENT_SAFE)}"


def generate_referral_link(username: Optional[str], origin: Optional[str] = None) -> str:
    return _signup_link(username, origin)


def generate_agent_invite_link(code: Optional[str], origin: Optional[str] = None) -> str:
    return _signup_link(code, origin)


def format_referral_username(raw: str) -> str:
    return _USERNAME_STRIP.sub("", raw.strip().lower())


def resolve_referrer(db: Session, ref: Optional[str]) -> Optional[User]:
    """The user behind a ``?ref=`` value: a username, or an agent invite code."""
    if not ref:
        return None
    username = format_referral_username(ref)
    stmt = (
        select(User)
        .outerjoin(Agent, Agent.user_id == User.id)
        .where(User.active.is_(True))
        .where(or_(User.username == username, Agent.invite_code == ref.strip()))
    )
    return db.scalars(stmt).first()
