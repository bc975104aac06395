import logging
from sqlmodel import Session
from typing import Iterable, List, Optional
from ..models import Notification

logger = logging.getLogger(__name__)


def create_notifications(
        session: Session,
        recipients: Iterable[str],
        sender: str,
        type: str,
        message: str,
        reference_id: Optional[int] = None,
        class_name: Optional[str] = None,
) -> List[Notification]:
    """
    Stores one notification per recipient.

    Fan-out is best effort: a failure is logged and rolled back, and the
    caller's own write is never affected.
    """
    created = []
    try:
        for recipient in recipients:
            note = Notification(
                recipient=recipient,
                sender=sender,
                type=type,
                message=message,
                reference_id=reference_id,
                class_name=class_name,
            )
            session.add(note)
            created.append(note)
        session.commit()
        for note in created:
            session.refresh(note)
    except Exception as e:
        session.rollback()
        logger.error(f"Failed to create {type} notifications for class {class_name}: {e}")
        return []
    return created
