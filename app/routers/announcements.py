from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select
from typing import Optional
from datetime import datetime
import logging
from ..db import get_session
from ..models import User, Announcement, Topic, STUDENT, TEACHER
from ..schemas import AnnouncementCreate
from ..dependencies.auth import get_current_user, require_teacher_or_admin
from ..crud.classes import is_enrolled, student_class_names, student_usernames, class_students
from ..crud.notifications import create_notifications
from ..tasks.email import queue_announcement_email
from .classes import writable_class
from .realtime import emit_to_class, emit_notifications

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/announcements", tags=["announcements"])


def preview(text: str, size: int = 50) -> str:
    return text[:size] + ("..." if len(text) > size else "")


@router.get("")
def list_announcements(
        class_name: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(100, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    statement = select(Announcement)
    if current_user.role == TEACHER:
        statement = statement.where(Announcement.teacher == current_user.username)
    elif current_user.role == STUDENT:
        if class_name:
            if not is_enrolled(session, class_name, current_user.username):
                raise HTTPException(status_code=403, detail="You are not enrolled in this class")
        else:
            statement = statement.where(Announcement.class_name.in_(student_class_names(session, current_user.username)))

    if class_name:
        statement = statement.where(Announcement.class_name == class_name)

    statement = statement.order_by(Announcement.date.desc()).offset((page - 1) * limit).limit(limit)
    return session.exec(statement).all()


@router.post("", status_code=201)
def create_announcement(
        payload: AnnouncementCreate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    klass = writable_class(session, payload.class_name, current_user)

    if payload.topic_id is not None:
        topic = session.get(Topic, payload.topic_id)
        if not topic or topic.class_name != payload.class_name:
            raise HTTPException(status_code=400, detail="Topic does not belong to this class")

    announcement = Announcement(
        teacher=current_user.username,
        class_name=payload.class_name,
        message=payload.message,
        date=payload.date or datetime.utcnow(),
        exam_id=payload.exam_id,
        attachments=payload.attachments,
        topic_id=payload.topic_id,
    )
    session.add(announcement)
    session.commit()
    session.refresh(announcement)

    students = student_usernames(session, klass)
    notes = create_notifications(
        session,
        students,
        sender=current_user.username,
        type="announcement",
        message=f'New announcement in {payload.class_name}: "{preview(payload.message)}"',
        reference_id=announcement.id,
        class_name=payload.class_name,
    )
    session.refresh(announcement)
    emit_notifications(notes)
    emit_to_class(payload.class_name, "announcement-created", announcement.model_dump())

    emails = [s.email for s in class_students(session, klass) if s.email]
    queue_announcement_email(emails, payload.class_name, current_user.name, payload.message)

    return {"message": "Announcement created successfully", "announcement": announcement}


@router.delete("/{announcement_id}")
def delete_announcement(
        announcement_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    announcement = session.get(Announcement, announcement_id)
    if not announcement:
        raise HTTPException(status_code=404, detail="Announcement not found")
    if current_user.role == TEACHER and announcement.teacher != current_user.username:
        raise HTTPException(status_code=403, detail="Not authorized")
    session.delete(announcement)
    session.commit()
    return {"message": "Announcement deleted"}
