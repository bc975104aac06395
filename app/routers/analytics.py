from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from sqlalchemy import func
from typing import Optional, Iterable, Union
from datetime import datetime, timedelta
from ..db import get_session
from ..models import User, Grade, Exam, ExamSubmission, Announcement, STUDENT, TEACHER
from ..dependencies.auth import get_current_user, require_teacher_or_admin
from ..crud.classes import get_class_by_name, get_owned_class, student_usernames
from ..crud.user import get_user_by_username
from ..processing.gradebook import numeric_grade
from .exams import get_exam_or_404, ensure_exam_owner

router = APIRouter(prefix="/analytics", tags=["analytics"])

ENGAGEMENT_WINDOW_DAYS = 30


def average(values: Iterable[Optional[float]]) -> Union[float, str]:
    numbers = [v for v in values if v is not None]
    if not numbers:
        return "N/A"
    return round(sum(numbers) / len(numbers), 2)


def percent(part: int, whole: int) -> str:
    return f"{(part / whole * 100) if whole else 0:.2f}%"


def count(session: Session, statement) -> int:
    return session.exec(statement).one()


def analytics_class(session: Session, class_name: str, user: User):
    klass = get_class_by_name(session, class_name)
    if not klass:
        raise HTTPException(status_code=404, detail="Class not found")
    if user.role == TEACHER and klass.teacher != user.username:
        raise HTTPException(status_code=403, detail="You are not authorized to view analytics for this class")
    return klass


@router.get("/class/{class_name}")
def class_overview(class_name: str, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    klass = analytics_class(session, class_name, current_user)
    grades = session.exec(select(Grade).where(Grade.class_name == class_name)).all()

    return {
        "class_name": class_name,
        "student_count": len(student_usernames(session, klass)),
        "exam_count": count(session, select(func.count(Exam.id)).where(Exam.class_name == class_name)),
        "announcement_count": count(
            session, select(func.count(Announcement.id)).where(Announcement.class_name == class_name)
        ),
        "average_grade": average(numeric_grade(g.grade) for g in grades),
        "total_submissions": count(
            session, select(func.count(ExamSubmission.id)).where(ExamSubmission.class_name == class_name)
        ),
        "teacher": klass.teacher,
    }


@router.get("/student/{username}")
def student_performance(
        username: str,
        class_name: Optional[str] = None,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    if current_user.role == STUDENT and current_user.username != username:
        raise HTTPException(status_code=403, detail="You can only view your own analytics")
    if current_user.role == TEACHER:
        if not class_name or not get_owned_class(session, class_name, current_user.username):
            raise HTTPException(status_code=403, detail="You are not authorized to view this student's analytics")

    student = get_user_by_username(session, username)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")

    grade_query = select(Grade).where(Grade.student == username)
    submission_query = select(func.count(ExamSubmission.id)).where(ExamSubmission.student == username)
    if class_name:
        grade_query = grade_query.where(Grade.class_name == class_name)
        submission_query = submission_query.where(ExamSubmission.class_name == class_name)
    grades = session.exec(grade_query).all()

    completed = count(session, submission_query)
    total_exams = count(session, select(func.count(Exam.id)).where(Exam.class_name == class_name)) if class_name else 0

    return {
        "username": username,
        "name": student.name,
        "average_grade": average(numeric_grade(g.grade) for g in grades),
        "total_grades": len(grades),
        "completed_exams": completed,
        "pending_exams": max(total_exams - completed, 0),
        "total_exams": total_exams,
        "grades": [
            {"class_name": g.class_name, "grade": g.grade, "feedback": g.feedback, "exam_id": g.exam_id}
            for g in grades
        ],
    }


@router.get("/exam/{exam_id}")
def exam_statistics(exam_id: int, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    exam = get_exam_or_404(session, exam_id)
    ensure_exam_owner(exam, current_user, "You are not authorized to view analytics for this exam")

    submissions = session.exec(select(ExamSubmission).where(ExamSubmission.exam_id == exam_id)).all()
    klass = get_class_by_name(session, exam.class_name)
    total_students = len(student_usernames(session, klass)) if klass else 0
    graded = [s.final_score for s in submissions if s.final_score is not None]

    return {
        "exam_id": exam_id,
        "exam_title": exam.title,
        "class_name": exam.class_name,
        "total_students": total_students,
        "submission_count": len(submissions),
        "submission_rate": percent(len(submissions), total_students),
        "graded_count": len(graded),
        "average_score": average(graded),
        "due_date": exam.due,
    }


@router.get("/engagement/{class_name}")
def engagement(class_name: str, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    klass = analytics_class(session, class_name, current_user)
    since = datetime.utcnow() - timedelta(days=ENGAGEMENT_WINDOW_DAYS)

    recent = select(ExamSubmission).where(
        ExamSubmission.class_name == class_name,
        ExamSubmission.submitted_at >= since,
    )
    submissions = session.exec(recent).all()
    active = {s.student for s in submissions}
    total_students = len(student_usernames(session, klass))

    return {
        "class_name": class_name,
        "total_students": total_students,
        "active_students": len(active),
        "engagement_rate": percent(len(active), total_students),
        "recent_activity": {
            "announcements": count(session, select(func.count(Announcement.id)).where(
                Announcement.class_name == class_name, Announcement.date >= since
            )),
            "exams": count(session, select(func.count(Exam.id)).where(
                Exam.class_name == class_name, Exam.created_at >= since
            )),
            "submissions": len(submissions),
        },
        "period": f"Last {ENGAGEMENT_WINDOW_DAYS} days",
    }
