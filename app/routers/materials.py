from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select
from typing import Optional
from datetime import datetime
import logging
from ..db import get_session
from ..models import User, Material, MaterialSubmission, ADMIN, STUDENT
from ..schemas import MaterialCreate, MaterialUpdate, MaterialSubmit, MaterialGrade
from ..dependencies.auth import get_current_user, require_teacher_or_admin
from ..crud.classes import student_usernames, student_class_names
from ..crud.notifications import create_notifications
from .classes import writable_class
from .realtime import emit_notifications

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/materials", tags=["materials"])


def get_material_or_404(session: Session, material_id: int) -> Material:
    material = session.get(Material, material_id)
    if not material:
        raise HTTPException(status_code=404, detail="Material not found")
    return material


def ensure_material_owner(material: Material, user: User, message: str = "Not authorized"):
    if user.role != ADMIN and material.teacher != user.username:
        raise HTTPException(status_code=403, detail=message)


@router.get("")
def list_materials(
        class_name: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    statement = select(Material)
    if class_name:
        statement = statement.where(Material.class_name == class_name)
    elif current_user.role == STUDENT:
        statement = statement.where(Material.class_name.in_(student_class_names(session, current_user.username)))
    statement = statement.order_by(Material.created_at.desc()).offset((page - 1) * limit).limit(limit)
    return session.exec(statement).all()


@router.get("/{material_id}")
def get_material(material_id: int, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    return get_material_or_404(session, material_id)


@router.post("", status_code=201)
def create_material(
        payload: MaterialCreate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    klass = writable_class(session, payload.class_name, current_user)
    material = Material(
        title=payload.title,
        description=payload.description,
        type=payload.type,
        content=payload.content,
        class_name=payload.class_name,
        teacher=current_user.username,
    )
    session.add(material)
    session.commit()
    session.refresh(material)

    students = student_usernames(session, klass)
    if students:
        logger.info(f"Sending material notifications to {len(students)} students in class {klass.name}")
        notes = create_notifications(
            session,
            students,
            sender=current_user.username,
            type="material",
            message=f'New material posted in {klass.name}: "{material.title}"',
            reference_id=material.id,
            class_name=klass.name,
        )
        session.refresh(material)
        emit_notifications(notes)

    return {"message": "Material created successfully", "material": material}


@router.put("/{material_id}")
def update_material(
        material_id: int,
        payload: MaterialUpdate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    material = get_material_or_404(session, material_id)
    ensure_material_owner(material, current_user, "Not authorized to update this material")

    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(material, field, value)
    material.updated_at = datetime.utcnow()
    session.add(material)
    session.commit()
    session.refresh(material)
    return {"message": "Material updated successfully", "material": material}


@router.delete("/{material_id}")
def delete_material(
        material_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    material = get_material_or_404(session, material_id)
    ensure_material_owner(material, current_user, "Not authorized to delete this material")

    submissions = session.exec(select(MaterialSubmission).where(MaterialSubmission.material_id == material_id)).all()
    for submission in submissions:
        session.delete(submission)
    session.delete(material)
    session.commit()
    return {"message": "Material deleted successfully"}


@router.post("/{material_id}/submit", status_code=201)
def submit_material(
        material_id: int,
        payload: MaterialSubmit,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    material = get_material_or_404(session, material_id)
    student_name = current_user.name or current_user.username

    submission = MaterialSubmission(
        material_id=material.id,
        class_name=material.class_name,
        student=current_user.username,
        student_name=student_name,
        file_name=payload.file_name,
        file_path=payload.file_path,
        file_size=payload.file_size,
        mime_type=payload.mime_type,
    )
    session.add(submission)
    session.commit()
    session.refresh(submission)

    notes = create_notifications(
        session,
        [material.teacher],
        sender=current_user.username,
        type="material",
        message=f'{student_name} submitted a response to "{material.title}"',
        reference_id=material.id,
        class_name=material.class_name,
    )
    session.refresh(submission)
    emit_notifications(notes)
    return {"message": "Submission created successfully", "submission": submission}


@router.get("/{material_id}/submissions")
def material_submissions(
        material_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    material = get_material_or_404(session, material_id)
    ensure_material_owner(material, current_user, "Not authorized to view submissions for this material")
    return session.exec(
        select(MaterialSubmission)
        .where(MaterialSubmission.material_id == material_id)
        .order_by(MaterialSubmission.submitted_at.desc())
    ).all()


@router.get("/{material_id}/my-submission")
def my_submission(material_id: int, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    return session.exec(
        select(MaterialSubmission).where(
            MaterialSubmission.material_id == material_id,
            MaterialSubmission.student == current_user.username,
        )
    ).first()


@router.put("/{material_id}/submissions/{submission_id}/grade")
def grade_submission(
        material_id: int,
        submission_id: int,
        payload: MaterialGrade,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    material = get_material_or_404(session, material_id)
    ensure_material_owner(material, current_user)
    submission = session.get(MaterialSubmission, submission_id)
    if not submission or submission.material_id != material_id:
        raise HTTPException(status_code=404, detail="Submission not found")

    if payload.score is not None:
        submission.score = payload.score
    if payload.feedback is not None:
        submission.feedback = payload.feedback
    submission.status = "graded"
    submission.graded_at = datetime.utcnow()
    session.add(submission)
    session.commit()
    session.refresh(submission)

    notes = create_notifications(
        session,
        [submission.student],
        sender=current_user.username,
        type="material",
        message=f'Your submission for "{material.title}" has been graded',
        reference_id=material.id,
        class_name=material.class_name,
    )
    session.refresh(submission)
    emit_notifications(notes)
    return {"message": "Submission graded successfully", "submission": submission}


@router.delete("/{material_id}/submissions/{submission_id}")
def delete_submission(
        material_id: int,
        submission_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    submission = session.get(MaterialSubmission, submission_id)
    if not submission or submission.material_id != material_id:
        raise HTTPException(status_code=404, detail="Submission not found")
    if current_user.role == STUDENT and submission.student != current_user.username:
        raise HTTPException(status_code=403, detail="Not authorized to delete this submission")

    session.delete(submission)
    session.commit()
    return {"message": "Submission deleted successfully"}
