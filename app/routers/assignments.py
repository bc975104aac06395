from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select
from sqlalchemy import or_
import logging
from ..db import get_session
from ..models import User, Assignment
from ..schemas import AssignmentCreate, AssignmentSubmit
from ..dependencies.auth import get_current_user, require_student, require_teacher_or_admin
from ..crud.classes import is_enrolled, student_class_names
from .classes import writable_class

logger = logging.getLogger(__name__)

router = APIRouter(tags=["assignments"])


@router.get("/assignments")
def list_assignments(
        page: int = Query(1, ge=1),
        limit: int = Query(100, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    statement = (
        select(Assignment)
        .where(Assignment.created_by == current_user.username)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return session.exec(statement).all()


@router.post("/assignments", status_code=201)
def create_assignment(
        payload: AssignmentCreate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    writable_class(session, payload.class_name, current_user)
    assignment = Assignment(
        class_name=payload.class_name,
        title=payload.title,
        description=payload.description,
        due=payload.due,
        status=payload.status or "assigned",
        created_by=current_user.username,
    )
    session.add(assignment)
    session.commit()
    session.refresh(assignment)
    return {"message": "Assignment created successfully", "assignment": assignment}


@router.get("/student/assignments")
def student_assignments(
        page: int = Query(1, ge=1),
        limit: int = Query(100, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(require_student)
):
    statement = (
        select(Assignment)
        .where(Assignment.class_name.in_(student_class_names(session, current_user.username)))
        .where(or_(Assignment.student_username == current_user.username, Assignment.student_username.is_(None)))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return session.exec(statement).all()


@router.put("/assignments/{assignment_id}")
def submit_assignment(
        assignment_id: int,
        payload: AssignmentSubmit,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_student)
):
    assignment = session.get(Assignment, assignment_id)
    if not assignment:
        raise HTTPException(status_code=404, detail="Assignment not found")
    if not is_enrolled(session, assignment.class_name, current_user.username):
        raise HTTPException(status_code=403, detail="You are not enrolled in this class")

    assignment.status = payload.status or "submitted"
    assignment.submitted_file = payload.submitted_file
    assignment.student_username = current_user.username
    session.add(assignment)
    session.commit()
    logger.info(f"{current_user.username} submitted assignment {assignment_id}")
    return {"message": "Assignment submitted successfully"}
