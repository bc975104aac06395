from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select
from sqlalchemy import func
from ..db import get_session
from ..models import User, Notification
from ..dependencies.auth import get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


def own_notification(session: Session, notification_id: int, user: User, action: str) -> Notification:
    note = session.get(Notification, notification_id)
    if not note:
        raise HTTPException(status_code=404, detail="Notification not found")
    if note.recipient != user.username:
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} this notification")
    return note


@router.get("")
def list_notifications(
        unread_only: bool = False,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    statement = select(Notification).where(Notification.recipient == current_user.username)
    if unread_only:
        statement = statement.where(Notification.read == False)  # noqa: E712
    notes = session.exec(
        statement.order_by(Notification.created_at.desc(), Notification.id.desc()).offset((page - 1) * limit).limit(limit)
    ).all()

    unread = session.exec(
        select(func.count(Notification.id)).where(
            Notification.recipient == current_user.username,
            Notification.read == False,  # noqa: E712
        )
    ).one()
    return {"notifications": notes, "unread_count": unread}


# declared before /{notification_id}/read
@router.put("/read-all")
def mark_all_read(session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    notes = session.exec(
        select(Notification).where(
            Notification.recipient == current_user.username,
            Notification.read == False,  # noqa: E712
        )
    ).all()
    for note in notes:
        note.read = True
        session.add(note)
    session.commit()
    return {"message": "All notifications marked as read"}


@router.put("/{notification_id}/read")
def mark_read(notification_id: int, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    note = own_notification(session, notification_id, current_user, "update")
    note.read = True
    session.add(note)
    session.commit()
    return {"message": "Notification marked as read"}


@router.delete("/{notification_id}")
def delete_notification(
        notification_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    note = own_notification(session, notification_id, current_user, "delete")
    session.delete(note)
    session.commit()
    return {"message": "Notification deleted"}
