from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from auth import SessionContext
from errors import FormValidationError, NotFoundError, PermissionDenied
from models import Message, Notification, User

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 10000
PRIVILEGED_ROLES = {"staff", "admin"}


def validate_message_content(content: str) -> str:
    text = (content or "").strip()
    if not text:
        raise FormValidationError("Message required", "Message cannot be empty.", {"content": "required"})
    if len(text) > MAX_MESSAGE_LENGTH:
        raise FormValidationError(
            "Message too long",
            f"Message must be less than {MAX_MESSAGE_LENGTH} characters.",
            {"content": "too_long"},
        )
    return text


def send_message(
    db: Session,
    ctx: SessionContext,
    recipient_id: str | uuid.UUID,
    content: str,
    application_id: Optional[uuid.UUID] = None,
) -> Message:
    text = validate_message_content(content)
    recipient = db.get(User, uuid.UUID(str(recipient_id)))
    privileged = ctx.role in PRIVILEGED_ROLES
    if recipient is None or not recipient.active or (not privileged and recipient.tenant_id != ctx.tenant_id):
        raise NotFoundError("Recipient not found", "This contact is no longer available.")
    if recipient.id == ctx.user_id:
        raise PermissionDenied("Message not sent", "You cannot message yourself.")
    if not privileged and recipient.role == ctx.role and recipient.role not in PRIVILEGED_ROLES:
        raise PermissionDenied("Message not sent", f"Messaging between {ctx.role}s is not allowed.")

    message = Message(
        tenant_id=ctx.tenant_id,
        sender_id=ctx.user_id,
        recipient_id=recipient.id,
        application_id=application_id,
        content=text,
    )
    db.add(message)
    db.add(
        Notification(
            user_id=recipient.id,
            tenant_id=recipient.tenant_id,
            type="message",
            title="New message",
            content=f"{ctx.full_name or ctx.email} sent you a message.",
            metadata_json={"sender_id": str(ctx.user_id)},
            action_url="/dashboard/messages",
        )
    )
    db.flush()
    logger.info("Message %s sent from %s to %s", message.id, ctx.user_id, recipient.id)
    return message


def _between(user_a: uuid.UUID, user_b: uuid.UUID):
    return or_(
        and_(Message.sender_id == user_a, Message.recipient_id == user_b),
        and_(Message.sender_id == user_b, Message.recipient_id == user_a),
    )


def list_conversation(db: Session, ctx: SessionContext, other_user_id: str | uuid.UUID, limit: int = 200) -> list[Message]:
    other = uuid.UUID(str(other_user_id))
    stmt = select(Message).where(_between(ctx.user_id, other)).order_by(Message.created_at.asc()).limit(limit)
    return list(db.scalars(stmt))


def list_contacts(db: Session, ctx: SessionContext) -> list[User]:
    """Users the caller may message, most recent correspondents first."""
    stmt = select(User).where(User.active.is_(True), User.id != ctx.user_id)
    if ctx.role not in PRIVILEGED_ROLES:
        stmt = stmt.where(User.tenant_id == ctx.tenant_id)
        stmt = stmt.where(or_(User.role != ctx.role, User.role.in_(PRIVILEGED_ROLES)))
    return list(db.scalars(stmt.order_by(User.full_name)))


def mark_conversation_read(db: Session, ctx: SessionContext, other_user_id: str | uuid.UUID) -> int:
    other = uuid.UUID(str(other_user_id))
    result = db.execute(
        update(Message)
        .where(Message.sender_id == other, Message.recipient_id == ctx.user_id, Message.read_at.is_(None))
        .values(read_at=datetime.now(timezone.utc))
    )
    return result.rowcount or 0


def unread_count(db: Session, ctx: SessionContext) -> int:
    stmt = select(func.count()).select_from(Message).where(
        Message.recipient_id == ctx.user_id, Message.read_at.is_(None)
    )
    return int(db.scalar(stmt) or 0)
