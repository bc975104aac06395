from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from sqlalchemy.exc import SQLAlchemyError
import logging
from ..db import get_session
from ..models import User, Announcement, Exam, ExamSubmission, TEACHER
from ..schemas import BulkGrades, BulkIds, BulkNotification
from ..dependencies.auth import require_teacher_or_admin
from ..crud.classes import student_usernames
from ..crud.grades import upsert_grade
from ..crud.notifications import create_notifications
from .classes import writable_class
from .realtime import emit_to_class, emit_notifications

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bulk", tags=["bulk"])


@router.post("/grades")
def bulk_grades(payload: BulkGrades, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    writable_class(session, payload.class_name, current_user)

    results = []
    for item in payload.grades:
        if not item.student or not item.grade:
            results.append({"student": item.student, "success": False, "error": "Student and grade are required"})
            continue
        try:
            upsert_grade(session, payload.class_name, item.student, item.grade, item.feedback or "", item.exam_id)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Bulk grade for {item.student} in {payload.class_name} failed: {e}")
            results.append({"student": item.student, "success": False, "error": "Failed to save grade"})
            continue
        results.append({"student": item.student, "success": True})

    return {"message": "Bulk grading completed", "results": results}


@router.post("/announcements/delete")
def bulk_delete_announcements(
        payload: BulkIds,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    announcements = session.exec(select(Announcement).where(Announcement.id.in_(payload.ids))).all()
    if current_user.role == TEACHER and any(a.teacher != current_user.username for a in announcements):
        raise HTTPException(status_code=403, detail="You can only delete your own announcements")

    for announcement in announcements:
        session.delete(announcement)
    session.commit()
    return {
        "message": f"Successfully deleted {len(announcements)} announcements",
        "deleted_count": len(announcements),
    }


@router.post("/exams/delete")
def bulk_delete_exams(payload: BulkIds, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    exams = session.exec(select(Exam).where(Exam.id.in_(payload.ids))).all()
    if current_user.role == TEACHER and any(e.created_by != current_user.username for e in exams):
        raise HTTPException(status_code=403, detail="You can only delete your own exams")

    submissions = session.exec(select(ExamSubmission).where(ExamSubmission.exam_id.in_([e.id for e in exams]))).all()
    for submission in submissions:
        session.delete(submission)
    for exam in exams:
        session.delete(exam)
    session.commit()
    logger.info(f"{current_user.username} bulk deleted {len(exams)} exams and {len(submissions)} submissions")
    return {"message": f"Successfully deleted {len(exams)} exams", "deleted_count": len(exams)}


@router.post("/notifications")
def bulk_notify(
        payload: BulkNotification,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    klass = writable_class(session, payload.class_name, current_user)
    notes = create_notifications(
        session,
        student_usernames(session, klass),
        sender=current_user.username,
        type=payload.type,
        message=payload.message,
        class_name=klass.name,
    )
    emit_to_class(klass.name, "bulk-notification", {"message": payload.message, "sender": current_user.username})
    emit_notifications(notes)
    return {"message": f"Notification sent to {len(notes)} students", "count": len(notes)}
