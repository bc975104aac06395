from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from typing import Optional
from datetime import datetime
import logging
from ..db import get_session
from ..models import User, Exam, ExamSubmission, Class, STUDENT, TEACHER, ADMIN
from ..schemas import ExamCreate, ExamUpdate, ExamSubmit, ManualGrade
from ..dependencies.auth import get_current_user, require_student, require_teacher_or_admin
from ..crud.classes import is_enrolled, student_usernames, student_classes
from ..crud.grades import upsert_grade
from ..crud.notifications import create_notifications
from ..exceptions import conflict
from ..processing.scoring import score_submission
from .classes import writable_class, ensure_class_access
from .realtime import emit_to_class, emit_to_user, emit_notifications

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exams", tags=["exams"])

PENDING_FEEDBACK = "Pending manual grading by teacher."


def get_exam_or_404(session: Session, exam_id: int) -> Exam:
    exam = session.get(Exam, exam_id)
    if not exam:
        raise HTTPException(status_code=404, detail="Exam not found")
    return exam


def ensure_exam_owner(exam: Exam, user: User, message: str = "Not authorized"):
    if user.role != ADMIN and exam.created_by != user.username:
        raise HTTPException(status_code=403, detail=message)


def manual_exam_for(session: Session, exam_id: int, user: User) -> Exam:
    exam = get_exam_or_404(session, exam_id)
    if not exam.manual_grading:
        raise HTTPException(status_code=400, detail="Exam is not set for manual grading")
    ensure_exam_owner(exam, user)
    return exam


def student_exam_view(exam: Exam) -> dict:
    data = exam.model_dump()
    data["questions"] = [
        {k: v for k, v in q.items() if k != "correct_answer"}
        for q in exam.questions or []
    ]
    return data


def notify_exam_posted(session: Session, exam: Exam, klass: Class, sender: str):
    students = student_usernames(session, klass)
    notes = create_notifications(
        session,
        students,
        sender=sender,
        type="exam",
        message=f'New exam posted: "{exam.title}"',
        reference_id=exam.id,
        class_name=exam.class_name,
    )
    # the notification commit expires the exam
    session.refresh(exam)
    payload = exam.model_dump()
    emit_to_class(exam.class_name, "new-exam", {"exam": payload, "message": f"{sender} posted a new exam: {exam.title}"})
    emit_to_class(exam.class_name, "exam-created", payload)
    emit_notifications(notes)


@router.get("")
def list_exams(
        class_name: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(100, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    statement = select(Exam)
    if class_name:
        if current_user.role == STUDENT and not is_enrolled(session, class_name, current_user.username):
            raise HTTPException(status_code=403, detail="Not enrolled in this class")
        statement = statement.where(Exam.class_name == class_name)
    elif current_user.role == TEACHER:
        statement = statement.where(Exam.created_by == current_user.username)
    elif current_user.role == STUDENT:
        names = [c.name for c in student_classes(session, current_user.username)]
        statement = statement.where(Exam.class_name.in_(names))

    statement = statement.order_by(Exam.created_at.desc()).offset((page - 1) * limit).limit(limit)
    exams = session.exec(statement).all()
    if current_user.role == STUDENT:
        return [student_exam_view(e) for e in exams]
    return exams


@router.get("/manual/list")
def manual_exam_list(session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    exams = session.exec(
        select(Exam)
        .where(Exam.created_by == current_user.username, Exam.manual_grading == True)  # noqa: E712
        .order_by(Exam.created_at.desc())
    ).all()
    result = []
    for exam in exams:
        count = session.exec(select(func.count()).select_from(ExamSubmission).where(ExamSubmission.exam_id == exam.id)).one()
        result.append({
            "id": exam.id,
            "title": exam.title,
            "class_name": exam.class_name,
            "due": exam.due,
            "submissions_count": count,
        })
    return result


@router.get("/manual/{exam_id}/submissions")
def manual_submissions(
        exam_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    exam = manual_exam_for(session, exam_id, current_user)
    submissions = session.exec(select(ExamSubmission).where(ExamSubmission.exam_id == exam.id)).all()
    return [{**s.model_dump(), "questions": exam.questions} for s in submissions]


@router.post("/manual/{exam_id}/submissions/return-all")
def return_all_grades(
        exam_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    exam = manual_exam_for(session, exam_id, current_user)
    pending = session.exec(
        select(ExamSubmission).where(
            ExamSubmission.exam_id == exam.id,
            ExamSubmission.graded_at.is_not(None),
            ExamSubmission.returned == False,  # noqa: E712
        )
    ).all()

    returned = 0
    for submission in pending:
        return_submission(session, exam, submission, current_user.username)
        returned += 1
    return {"message": f"Returned {returned} grades", "returned": returned}


@router.post("/manual/{exam_id}/submissions/{submission_id}/grade")
def grade_manual_submission(
        exam_id: int,
        submission_id: int,
        payload: ManualGrade,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    exam = manual_exam_for(session, exam_id, current_user)
    submission = session.get(ExamSubmission, submission_id)
    if not submission or submission.exam_id != exam.id:
        raise HTTPException(status_code=404, detail="Submission not found")

    submission.final_score = payload.final_score
    submission.feedback = payload.feedback or ""
    submission.graded_at = datetime.utcnow()
    # stays hidden from the student until returned
    submission.returned = False
    session.add(submission)
    session.commit()
    return {"message": "Grade saved (not returned)", "final_score": payload.final_score, "feedback": submission.feedback}


def return_submission(session: Session, exam: Exam, submission: ExamSubmission, sender: str):
    total = len(exam.questions or [])
    grade_text = f"{submission.final_score}/{total}"
    upsert_grade(session, exam.class_name, submission.student, grade_text, submission.feedback or "", exam.id, commit=False)
    submission.returned = True
    session.add(submission)
    session.commit()

    notes = create_notifications(
        session,
        [submission.student],
        sender=sender,
        type="grade",
        message=f'Your grade for "{exam.title}" is {grade_text}',
        reference_id=exam.id,
        class_name=exam.class_name,
    )
    emit_to_user(submission.student, "grade-returned", {
        "exam_id": exam.id,
        "exam_title": exam.title,
        "final_score": submission.final_score,
        "feedback": submission.feedback or "",
    })
    emit_notifications(notes)


@router.post("/manual/{exam_id}/submissions/{submission_id}/return")
def return_manual_submission(
        exam_id: int,
        submission_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    exam = manual_exam_for(session, exam_id, current_user)
    submission = session.get(ExamSubmission, submission_id)
    if not submission or submission.exam_id != exam.id:
        raise HTTPException(status_code=404, detail="Submission not found")
    if submission.final_score is None or submission.graded_at is None:
        raise HTTPException(status_code=400, detail="Submission has not been graded yet")

    return_submission(session, exam, submission, current_user.username)
    return {"message": "Grade returned to student", "final_score": submission.final_score}


@router.get("/{exam_id}")
def get_exam(exam_id: int, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    exam = get_exam_or_404(session, exam_id)
    if current_user.role == STUDENT:
        ensure_class_access(session, exam.class_name, current_user)
        return student_exam_view(exam)
    return exam


@router.post("", status_code=201)
def create_exam(
        payload: ExamCreate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    if not payload.title:
        raise HTTPException(status_code=400, detail="Title is required")
    if not payload.class_name:
        raise HTTPException(status_code=400, detail="Class name is required")
    if not payload.questions:
        raise HTTPException(status_code=400, detail="At least one question is required")

    klass = writable_class(session, payload.class_name, current_user)
    exam = Exam(
        title=payload.title,
        description=payload.description,
        class_name=payload.class_name,
        questions=[q.model_dump() for q in payload.questions],
        created_by=current_user.username,
        due=payload.due,
        manual_grading=payload.manual_grading,
        allow_resubmission=payload.allow_resubmission,
    )
    session.add(exam)
    session.commit()
    session.refresh(exam)
    logger.info(f"Exam {exam.id} created for class {exam.class_name} (due {exam.due})")

    notify_exam_posted(session, exam, klass, current_user.username)
    return {"message": "Exam created successfully", "exam": exam}


@router.put("/{exam_id}")
def update_exam(
        exam_id: int,
        payload: ExamUpdate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    exam = get_exam_or_404(session, exam_id)
    ensure_exam_owner(exam, current_user, "Not authorized to update this exam")
    if not payload.title:
        raise HTTPException(status_code=400, detail="Title is required")
    if not payload.questions:
        raise HTTPException(status_code=400, detail="At least one question is required")

    # the class is fixed once the exam exists
    exam.title = payload.title
    exam.description = payload.description
    exam.questions = [q.model_dump() for q in payload.questions]
    exam.due = payload.due
    exam.updated_at = datetime.utcnow()
    session.add(exam)
    session.commit()
    session.refresh(exam)

    emit_to_class(exam.class_name, "exam-updated", exam.model_dump())
    return {"message": "Exam updated successfully", "exam": exam}


@router.delete("/{exam_id}")
def delete_exam(
        exam_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    exam = get_exam_or_404(session, exam_id)
    ensure_exam_owner(exam, current_user, "Not authorized to delete this exam")

    class_name, title = exam.class_name, exam.title
    for submission in session.exec(select(ExamSubmission).where(ExamSubmission.exam_id == exam.id)).all():
        session.delete(submission)
    session.delete(exam)
    session.commit()

    emit_to_class(class_name, "exam-deleted", {
        "exam_id": exam_id,
        "message": f'Exam "{title}" was deleted by {current_user.username}',
    })
    return {"message": "Exam deleted successfully", "exam_id": exam_id}


@router.post("/{exam_id}/submit")
def submit_exam(
        exam_id: int,
        payload: ExamSubmit,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_student)
):
    exam = get_exam_or_404(session, exam_id)
    if not is_enrolled(session, exam.class_name, current_user.username):
        raise HTTPException(status_code=403, detail="Not enrolled in this class")

    existing = session.exec(
        select(ExamSubmission).where(ExamSubmission.exam_id == exam.id, ExamSubmission.student == current_user.username)
    ).first()
    if existing:
        raise conflict("You have already submitted this exam", {"exam_id": exam.id})

    klass = next((c for c in student_classes(session, current_user.username) if c.name == exam.class_name), None)
    answers = [a.model_dump() for a in payload.answers]
    total = len(exam.questions or [])

    submission = ExamSubmission(
        exam_id=exam.id,
        student=current_user.username,
        answers=answers,
        total_questions=total,
        class_name=exam.class_name,
        class_course=klass.course if klass else None,
        class_year=klass.year if klass else None,
        manual_grading=exam.manual_grading,
    )

    if exam.manual_grading:
        submission.final_score = None
        submission.feedback = PENDING_FEEDBACK
        result = {
            "message": "Submission recorded, pending manual grading.",
            "raw_score": 0,
            "final_score": None,
            "total": total,
            "credits_used": 0,
            "credit_balance": None,
        }
    else:
        score = score_submission(exam.questions or [], answers, current_user.credit_points, exam.due, datetime.utcnow())
        feedback = f"Exam: {exam.title} {score.feedback_suffix}"
        submission.raw_score = score.raw_score
        submission.final_score = score.final_score
        submission.credits_used = score.credits_used
        submission.feedback = feedback

        upsert_grade(session, exam.class_name, current_user.username,
                     f"{score.final_score}/{score.total}", feedback, exam.id, commit=False)
        current_user.credit_points = score.credit_balance
        session.add(current_user)
        result = {"message": "Submission recorded", **score.to_dict()}

    session.add(submission)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise conflict("You have already submitted this exam", {"exam_id": exam.id})
    session.refresh(submission)
    logger.info(f"{current_user.username} submitted exam {exam.id}: {result.get('final_score')}/{total}")

    notes = create_notifications(
        session,
        [exam.created_by],
        sender=current_user.username,
        type="exam",
        message=f'{current_user.name} submitted "{exam.title}"',
        reference_id=exam.id,
        class_name=exam.class_name,
    )
    emit_notifications(notes)
    emit_to_user(exam.created_by, "exam-submitted", {
        "exam_id": exam.id,
        "student": current_user.username,
        "submission_id": submission.id,
        "final_score": submission.final_score,
    })
    return result


@router.get("/{exam_id}/submissions")
def list_exam_submissions(
        exam_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    exam = get_exam_or_404(session, exam_id)
    ensure_exam_owner(exam, current_user)
    return session.exec(select(ExamSubmission).where(ExamSubmission.exam_id == exam.id)).all()
