from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from sqlalchemy import func, or_, and_
from typing import Optional
from datetime import datetime
import logging
from ..db import get_session
from ..models import User, Message
from ..schemas import MessageCreate, MessagesRead
from ..dependencies.auth import get_current_user
from ..crud.classes import get_class_by_name, is_member
from ..crud.user import get_user_by_username
from .realtime import emit_to_class

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


def _class_or_404(session: Session, class_name: str):
    klass = get_class_by_name(session, class_name)
    if not klass:
        raise HTTPException(status_code=404, detail="Class not found")
    return klass


@router.get("")
def conversation(
        class_name: Optional[str] = None,
        other_user: Optional[str] = None,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    if not class_name or not other_user:
        raise HTTPException(status_code=400, detail="class_name and other_user are required")
    _class_or_404(session, class_name)
    if not is_member(session, class_name, current_user.username):
        raise HTTPException(status_code=403, detail="You are not in this class")

    me = current_user.username
    statement = (
        select(Message)
        .where(Message.class_name == class_name)
        .where(or_(
            and_(Message.sender == me, Message.recipient == other_user),
            and_(Message.sender == other_user, Message.recipient == me),
        ))
        .order_by(Message.created_at, Message.id)
    )
    return session.exec(statement).all()


@router.post("", status_code=201)
def send_message(payload: MessageCreate, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    _class_or_404(session, payload.class_name)
    if not (is_member(session, payload.class_name, current_user.username)
            and is_member(session, payload.class_name, payload.recipient)):
        raise HTTPException(status_code=403, detail="Both users must be in the class")

    recipient = get_user_by_username(session, payload.recipient)
    message = Message(
        class_name=payload.class_name,
        sender=current_user.username,
        sender_name=current_user.name or current_user.username,
        recipient=payload.recipient,
        recipient_name=recipient.name if recipient and recipient.name else payload.recipient,
        content=payload.content,
    )
    session.add(message)
    session.commit()
    session.refresh(message)

    emit_to_class(payload.class_name, "new-message", message.model_dump())
    return {"message": "Message sent successfully", "data": message}


@router.patch("/read")
def mark_read(payload: MessagesRead, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    messages = session.exec(
        select(Message).where(
            Message.class_name == payload.class_name,
            Message.sender == payload.sender,
            Message.recipient == current_user.username,
            Message.read == False,  # noqa: E712
        )
    ).all()
    now = datetime.utcnow()
    for message in messages:
        message.read = True
        message.read_at = now
        session.add(message)
    session.commit()
    return {"message": "Messages marked as read"}


@router.get("/unread-count")
def unread_count(
        class_name: Optional[str] = None,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    statement = select(func.count(Message.id)).where(
        Message.recipient == current_user.username,
        Message.read == False,  # noqa: E712
    )
    if class_name:
        statement = statement.where(Message.class_name == class_name)
    return {"count": session.exec(statement).one()}
