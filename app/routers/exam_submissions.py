from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
import logging
from ..db import get_session
from ..models import User, Exam, ExamSubmission, ADMIN
from ..dependencies.auth import get_current_user, require_teacher_or_admin
from ..crud.classes import teacher_class_names
from .exams import get_exam_or_404, ensure_exam_owner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exam-submissions", tags=["exam-submissions"])


@router.get("/check/{exam_id}")
def check_submission(exam_id: int, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    existing = session.exec(
        select(ExamSubmission).where(ExamSubmission.exam_id == exam_id, ExamSubmission.student == current_user.username)
    ).first()
    return {
        "has_submitted": existing is not None,
        "message": "Student has already submitted this exam" if existing else "Student has not submitted this exam yet",
    }


@router.get("/student")
def my_submissions(session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    rows = session.exec(
        select(ExamSubmission, Exam)
        .join(Exam, Exam.id == ExamSubmission.exam_id)
        .where(ExamSubmission.student == current_user.username)
        .order_by(ExamSubmission.submitted_at.desc())
    ).all()
    return [
        {
            "id": sub.id,
            "exam_id": sub.exam_id,
            "exam_title": exam.title,
            "class_name": exam.class_name,
            "due": exam.due,
            "submitted_at": sub.submitted_at,
            # manual grades stay hidden until returned
            "final_score": sub.final_score if (not sub.manual_grading or sub.returned) else None,
            "raw_score": sub.raw_score,
            "credits_used": sub.credits_used,
        }
        for sub, exam in rows
    ]


@router.get("/exam/{exam_id}")
def exam_submissions(
        exam_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    exam = get_exam_or_404(session, exam_id)
    ensure_exam_owner(exam, current_user)
    submissions = session.exec(
        select(ExamSubmission).where(ExamSubmission.exam_id == exam_id).order_by(ExamSubmission.submitted_at.desc())
    ).all()
    return [
        {"id": s.id, "student": s.student, "submitted_at": s.submitted_at, "final_score": s.final_score, "answers": s.answers}
        for s in submissions
    ]


@router.delete("/{submission_id}")
def delete_submission(
        submission_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    submission = session.get(ExamSubmission, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    exam = session.get(Exam, submission.exam_id)
    if exam and current_user.role != ADMIN and exam.created_by != current_user.username:
        raise HTTPException(status_code=403, detail="You can only delete submissions from your own classes")

    session.delete(submission)
    session.commit()
    logger.info(f"Deleted submission {submission_id} by {current_user.username}")
    return {"message": "Submission deleted successfully"}


@router.delete("")
def delete_all_submissions(session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    names = teacher_class_names(session, current_user.username)
    exam_ids = session.exec(select(Exam.id).where(Exam.class_name.in_(names))).all()
    submissions = session.exec(select(ExamSubmission).where(ExamSubmission.exam_id.in_(exam_ids))).all()
    for submission in submissions:
        session.delete(submission)
    session.commit()
    logger.info(f"Deleted {len(submissions)} submissions by teacher {current_user.username}")
    return {"message": "All submissions deleted successfully", "deleted_count": len(submissions)}
