from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from sqlalchemy.exc import IntegrityError
from typing import Optional
import logging
from ..db import get_session
from ..models import User, Topic, Announcement
from ..schemas import TopicCreate, TopicUpdate
from ..dependencies.auth import get_current_user, require_teacher_or_admin
from ..crud.classes import get_class_by_name
from .classes import writable_class, ensure_class_access

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/topics", tags=["topics"])

DEFAULT_COLOR = "#6c757d"
DUPLICATE_TOPIC = "Topic with this name already exists in this class"


def find_topic(session: Session, class_name: str, name: str) -> Optional[Topic]:
    return session.exec(select(Topic).where(Topic.class_name == class_name, Topic.name == name)).first()


def get_managed_topic(session: Session, topic_id: int, user: User) -> Topic:
    topic = session.get(Topic, topic_id)
    if not topic:
        raise HTTPException(status_code=404, detail="Topic not found")
    writable_class(session, topic.class_name, user)
    return topic


@router.get("")
def list_topics(
        class_name: Optional[str] = None,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    if not class_name:
        raise HTTPException(status_code=400, detail="Class name is required")
    if not get_class_by_name(session, class_name):
        raise HTTPException(status_code=404, detail="Class not found")
    ensure_class_access(session, class_name, current_user)

    return session.exec(
        select(Topic).where(Topic.class_name == class_name).order_by(Topic.order, Topic.created_at)
    ).all()


@router.post("", status_code=201)
def create_topic(
        payload: TopicCreate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    writable_class(session, payload.class_name, current_user)
    if find_topic(session, payload.class_name, payload.name):
        raise HTTPException(status_code=400, detail=DUPLICATE_TOPIC)

    last = session.exec(
        select(Topic).where(Topic.class_name == payload.class_name).order_by(Topic.order.desc())
    ).first()
    topic = Topic(
        name=payload.name,
        color=payload.color or DEFAULT_COLOR,
        class_name=payload.class_name,
        teacher=current_user.username,
        order=last.order + 1 if last else 0,
    )
    session.add(topic)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_TOPIC)
    session.refresh(topic)
    return {"message": "Topic created successfully", "topic": topic}


@router.put("/{topic_id}")
def update_topic(
        topic_id: int,
        payload: TopicUpdate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    topic = get_managed_topic(session, topic_id, current_user)

    if payload.name and payload.name != topic.name:
        if find_topic(session, topic.class_name, payload.name):
            raise HTTPException(status_code=400, detail=DUPLICATE_TOPIC)
        topic.name = payload.name
    if payload.color:
        topic.color = payload.color
    if payload.order is not None:
        topic.order = payload.order

    session.add(topic)
    session.commit()
    session.refresh(topic)
    return {"message": "Topic updated successfully", "topic": topic}


@router.delete("/{topic_id}")
def delete_topic(
        topic_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    topic = get_managed_topic(session, topic_id, current_user)

    # announcements outlive their topic
    announcements = session.exec(select(Announcement).where(Announcement.topic_id == topic_id)).all()
    for announcement in announcements:
        announcement.topic_id = None
        session.add(announcement)
    session.delete(topic)
    session.commit()
    logger.info(f"Topic {topic_id} deleted by {current_user.username}, {len(announcements)} announcements detached")
    return {"message": "Topic deleted successfully"}
