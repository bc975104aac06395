from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from datetime import datetime
import logging
from ..db import get_session
from ..models import User, Announcement, Material, Exam, TEACHER
from ..schemas import ReuseAnnouncement, ReuseMaterial, ReuseExam
from ..dependencies.auth import require_teacher_or_admin
from ..crud.classes import get_class_by_name
from .realtime import emit_to_class
from .exams import notify_exam_posted

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reuse", tags=["reuse"])


def target_class(session: Session, class_name: str, user: User):
    klass = get_class_by_name(session, class_name)
    if not klass:
        raise HTTPException(status_code=404, detail="Target class not found")
    if user.role == TEACHER and klass.teacher != user.username:
        raise HTTPException(status_code=403, detail="You are not authorized to post to the target class")
    return klass


def ensure_source_owner(owner: str, user: User, kind: str):
    if user.role == TEACHER and owner != user.username:
        raise HTTPException(status_code=403, detail=f"You can only reuse your own {kind}")


@router.post("/announcement")
def reuse_announcement(
        payload: ReuseAnnouncement,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    original = session.get(Announcement, payload.announcement_id)
    if not original:
        raise HTTPException(status_code=404, detail="Announcement not found")
    ensure_source_owner(original.teacher, current_user, "announcements")
    klass = target_class(session, payload.target_class, current_user)

    # topics belong to the source class
    copy = Announcement(
        teacher=current_user.username,
        class_name=klass.name,
        message=original.message,
        date=datetime.utcnow(),
        attachments=list(original.attachments or []),
    )
    session.add(copy)
    session.commit()
    session.refresh(copy)

    emit_to_class(klass.name, "announcement-created", copy.model_dump())
    return {"message": "Announcement reused successfully", "announcement": copy}


@router.post("/material")
def reuse_material(
        payload: ReuseMaterial,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    original = session.get(Material, payload.material_id)
    if not original:
        raise HTTPException(status_code=404, detail="Material not found")
    ensure_source_owner(original.teacher, current_user, "materials")
    klass = target_class(session, payload.target_class, current_user)

    copy = Material(
        title=original.title,
        description=original.description,
        type=original.type,
        content=original.content,
        class_name=klass.name,
        teacher=current_user.username,
    )
    session.add(copy)
    session.commit()
    session.refresh(copy)
    return {"message": "Material reused successfully", "material": copy}


@router.post("/exam")
def reuse_exam(payload: ReuseExam, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    original = session.get(Exam, payload.exam_id)
    if not original:
        raise HTTPException(status_code=404, detail="Exam not found")
    ensure_source_owner(original.created_by, current_user, "exams")
    klass = target_class(session, payload.target_class, current_user)

    copy = Exam(
        title=original.title,
        description=original.description,
        class_name=klass.name,
        due=payload.new_due_date or original.due,
        questions=[dict(q) for q in original.questions or []],
        created_by=current_user.username,
        manual_grading=original.manual_grading,
        allow_resubmission=original.allow_resubmission,
    )
    session.add(copy)
    session.commit()
    session.refresh(copy)

    logger.info(f"Exam {original.id} reused as {copy.id} in {klass.name} by {current_user.username}")
    notify_exam_posted(session, copy, klass, current_user.username)
    return {"message": "Exam reused successfully", "exam": copy}
