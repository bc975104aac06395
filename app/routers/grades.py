from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, File
from fastapi.responses import Response
from sqlmodel import Session, select
from typing import Optional, Dict
from datetime import datetime
import logging
from ..db import get_session
from ..models import User, Grade, Class, Exam, ExamSubmission, TEACHER
from ..schemas import GradeCreate
from ..dependencies.auth import get_current_user, require_student, require_teacher_or_admin
from ..crud.classes import teacher_class_names, is_enrolled, list_classes, student_usernames
from ..crud.grades import upsert_grade
from ..processing.gradebook import ExportRow, write_grades_csv, parse_grades_csv
from .classes import writable_class

logger = logging.getLogger(__name__)

router = APIRouter(tags=["grades"])


@router.get("/grades")
def list_grades(
        page: int = Query(1, ge=1),
        limit: int = Query(100, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    names = teacher_class_names(session, current_user.username)
    statement = select(Grade).where(Grade.class_name.in_(names)).offset((page - 1) * limit).limit(limit)
    return session.exec(statement).all()


@router.post("/grades", status_code=201)
def create_grade(
        payload: GradeCreate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    writable_class(session, payload.class_name, current_user)
    grade = Grade(
        class_name=payload.class_name,
        student=payload.student,
        grade=payload.grade,
        feedback=payload.feedback or "",
        exam_id=payload.exam_id,
    )
    session.add(grade)
    session.commit()
    session.refresh(grade)
    return {"message": "Grade assigned successfully", "grade": grade}


@router.get("/grades/export")
def export_grades(
        class_name: Optional[str] = None,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    stamp = int(datetime.utcnow().timestamp() * 1000)
    if class_name:
        writable_class(session, class_name, current_user)
        grades = session.exec(select(Grade).where(Grade.class_name == class_name).order_by(Grade.student)).all()
        filename = f"grades-{class_name}-{stamp}.csv"
    else:
        names = teacher_class_names(session, current_user.username)
        grades = session.exec(
            select(Grade).where(Grade.class_name.in_(names)).order_by(Grade.class_name, Grade.student)
        ).all()
        filename = f"grades-all-{stamp}.csv"

    classes: Dict[str, Optional[Class]] = {}
    exam_titles: Dict[int, str] = {}
    rows = []
    for grade in grades:
        if grade.class_name not in classes:
            classes[grade.class_name] = session.exec(select(Class).where(Class.name == grade.class_name)).first()
        klass = classes[grade.class_name]

        title = ""
        if grade.exam_id is not None:
            if grade.exam_id not in exam_titles:
                exam = session.get(Exam, grade.exam_id)
                exam_titles[grade.exam_id] = exam.title if exam else ""
            title = exam_titles[grade.exam_id]

        rows.append(ExportRow(
            class_name=grade.class_name,
            section=klass.section if klass else "",
            course=klass.course if klass else "",
            student=grade.student,
            grade=grade.grade,
            feedback=grade.feedback,
            exam_id=grade.exam_id,
            exam_title=title,
            created_at=grade.created_at,
        ))

    return Response(
        content=write_grades_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/grades/import")
def import_grades(
        file: UploadFile = File(...),
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    try:
        text = file.file.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV file is empty or invalid")
    if len(text.strip().splitlines()) < 2:
        raise HTTPException(status_code=400, detail="CSV file is empty or invalid")

    rows, errors = parse_grades_csv(text)
    imported = 0
    for row in rows:
        klass = session.exec(select(Class).where(Class.name == row.class_name)).first()
        if not klass:
            errors.append(f'Line {row.line}: Class "{row.class_name}" not found')
            continue
        if current_user.role == TEACHER and klass.teacher != current_user.username:
            errors.append(f'Line {row.line}: Not authorized to import grades for class "{row.class_name}"')
            continue
        if not is_enrolled(session, row.class_name, row.student):
            errors.append(f'Line {row.line}: Student "{row.student}" not in class "{row.class_name}"')
            continue
        upsert_grade(session, row.class_name, row.student, row.grade, row.feedback, row.exam_id)
        imported += 1

    errors.sort(key=lambda e: int(e.split(":")[0].split()[1]))
    logger.info(f"{current_user.username} imported {imported} grades ({len(errors)} errors)")
    result = {"message": f"Successfully imported {imported} grades", "imported": imported}
    if errors:
        result["errors"] = errors
    return result


@router.delete("/grades/{grade_id}")
def delete_grade(
        grade_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    grade = session.get(Grade, grade_id)
    if not grade:
        raise HTTPException(status_code=404, detail="Grade not found")
    if current_user.role == TEACHER and grade.class_name not in teacher_class_names(session, current_user.username):
        raise HTTPException(status_code=403, detail="Not authorized")
    session.delete(grade)
    session.commit()
    return {"message": "Grade deleted"}


@router.get("/student/grades")
def student_grades(
        page: int = Query(1, ge=1),
        limit: int = Query(100, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(require_student)
):
    statement = (
        select(Grade)
        .where(Grade.student == current_user.username)
        .order_by(Grade.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return session.exec(statement).all()


@router.get("/leaderboard")
def leaderboard(session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    classes = list_classes(session, teacher=current_user.username, limit=1000)
    class_names = [c.name for c in classes]

    # student -> [(class name, section)]
    enrolled: Dict[str, list] = {}
    for klass in classes:
        for username in student_usernames(session, klass):
            enrolled.setdefault(username, []).append((klass.name, klass.section or "No Section"))

    rows = session.exec(
        select(ExamSubmission, Exam)
        .join(Exam, Exam.id == ExamSubmission.exam_id)
        .where(Exam.class_name.in_(class_names))
    ).all()
    rows = sorted(rows, key=lambda r: (-(r[0].final_score or 0), r[0].submitted_at))

    students = sorted({sub.student for sub, _ in rows})
    users = {u.username: u for u in session.exec(select(User).where(User.username.in_(students))).all()}

    entries = []
    for sub, exam in rows:
        placements = enrolled.get(sub.student, [])
        class_name, section = exam.class_name, "No Section"
        match = [p for p in placements if p[0] == exam.class_name]
        if match:
            class_name, section = match[0]
        elif placements:
            class_name, section = placements[0]

        user = users.get(sub.student)
        entries.append({
            "id": sub.id,
            "student": sub.student,
            "student_email": user.email if user and user.email else "",
            "section": section,
            "credit_points": user.credit_points if user else 0,
            "exam_title": exam.title,
            "class_name": class_name,
            "raw_score": sub.raw_score or 0,
            "final_score": sub.final_score or 0,
            "total_questions": sub.total_questions or 0,
            "credits_used": sub.credits_used or 0,
            "submitted_at": sub.submitted_at,
            "exam_due": exam.due,
            "is_early": sub.submitted_at < exam.due if exam.due else None,
            "is_late": sub.submitted_at > exam.due if exam.due else None,
        })

    by_class: Dict[str, list] = {}
    by_section: Dict[str, list] = {}
    for entry in entries:
        by_class.setdefault(entry["class_name"], []).append(entry)
        by_section.setdefault(entry["section"], []).append(entry)

    return {
        "all_submissions": entries,
        "by_class": by_class,
        "by_section": by_section,
        "summary": {
            "total_submissions": len(entries),
            "total_students": len(students),
            "classes": class_names,
        },
    }
