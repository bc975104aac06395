from sqlmodel import select, Session
from typing import Optional
from ..models import Grade


def find_grade(session: Session, class_name: str, student: str, exam_id: Optional[int]):
    statement = select(Grade).where(
        Grade.class_name == class_name,
        Grade.student == student,
        Grade.exam_id == exam_id,
    )
    return session.exec(statement).first()


def upsert_grade(session: Session, class_name: str, student: str, grade: str,
                 feedback: Optional[str] = "", exam_id: Optional[int] = None, commit: bool = True):
    """Updates the grade for (class, student, exam) or creates it; returns (grade, created)."""
    existing = find_grade(session, class_name, student, exam_id)
    if existing:
        existing.grade = grade
        existing.feedback = feedback or ""
        record, created = existing, False
    else:
        record = Grade(class_name=class_name, student=student, grade=grade, feedback=feedback or "", exam_id=exam_id)
        created = True
    session.add(record)
    if commit:
        session.commit()
        session.refresh(record)
    return record, created
