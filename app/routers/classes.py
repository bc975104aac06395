from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session
from sqlalchemy.exc import IntegrityError
import logging
from ..db import get_session
from ..crud.classes import (
    unique_class_code,
    get_class_by_code,
    get_class_by_id,
    get_class_by_name,
    get_owned_class,
    list_classes,
    student_classes,
    is_enrolled,
    class_students,
    add_student_to_class,
    remove_student_from_class,
    delete_class,
    class_public,
    create_class,
)
from ..crud.user import get_user_by_username
from ..models import User, Class, STUDENT, TEACHER, ADMIN
from ..dependencies.auth import get_current_user, require_student, require_teacher_or_admin
from ..schemas import ClassCreate, JoinClassRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/classes", tags=["classes"])
student_router = APIRouter(prefix="/student", tags=["student"])


def new_class(session: Session, payload: ClassCreate, teacher: str) -> Class:
    """Creates a class with a server-generated code; shared with the admin routes."""
    if not payload.name or not (payload.section or payload.year):
        raise HTTPException(status_code=400, detail="Name and year/section are required")

    code = unique_class_code(session)
    if get_class_by_code(session, code):
        raise HTTPException(status_code=400, detail="Class code already exists")

    try:
        klass = create_class(
            session,
            name=payload.name,
            teacher=teacher,
            code=code,
            section=payload.section or payload.year,
            course=payload.course,
            year=payload.year,
            bg=payload.bg,
        )
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=400, detail="Class code already exists")

    logger.info(f"Class {klass.name} ({klass.code}) created for {teacher}")
    return klass


def writable_class(session: Session, class_name: str, user: User) -> Class:
    """The class a teacher may post to; admins may post to any class."""
    if user.role == TEACHER:
        klass = get_owned_class(session, class_name, user.username)
        if klass:
            return klass
    klass = get_class_by_name(session, class_name)
    if not klass:
        raise HTTPException(status_code=404, detail="Class not found")
    if user.role != ADMIN:
        raise HTTPException(status_code=403, detail="You are not authorized to manage this class")
    return klass


def ensure_class_access(session: Session, class_name: str, user: User):
    """Read access: an enrolled student, the owning teacher or any admin."""
    if user.role == ADMIN:
        return
    if user.role == STUDENT and is_enrolled(session, class_name, user.username):
        return
    if user.role == TEACHER and get_owned_class(session, class_name, user.username):
        return
    raise HTTPException(status_code=403, detail="You do not have access to this class")


def student_view(user: User) -> dict:
    return {"name": user.name or user.username, "username": user.username, "email": user.email, "role": user.role}


@router.get("")
def list_classes_endpoint(
        page: int = Query(1, ge=1),
        limit: int = Query(100, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    classes = list_classes(session, teacher=current_user.username, skip=(page - 1) * limit, limit=limit)
    return [class_public(session, c) for c in classes]


@router.post("", status_code=201)
def create_class_endpoint(
        payload: ClassCreate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    klass = new_class(session, payload, current_user.username)
    return {"message": "Class created successfully", "cls": class_public(session, klass)}


@router.post("/join")
def join_class(
        payload: JoinClassRequest,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_student)
):
    klass = get_class_by_code(session, payload.code.strip())
    if not klass:
        raise HTTPException(status_code=404, detail="Class not found")
    if is_enrolled(session, klass.name, current_user.username):
        raise HTTPException(status_code=400, detail="Already joined this class")

    try:
        add_student_to_class(session, klass.id, current_user.username)
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=400, detail="Already joined this class")

    logger.info(f"{current_user.username} joined class {klass.name}")
    return {"message": "Joined class successfully", "class": class_public(session, klass)}


@router.get("/{class_name}")
def get_class_endpoint(
        class_name: str,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    if current_user.role == TEACHER:
        klass = get_owned_class(session, class_name, current_user.username)
    elif current_user.role == STUDENT:
        klass = get_class_by_name(session, class_name)
        if klass and not is_enrolled(session, class_name, current_user.username):
            klass = None
    else:
        klass = get_class_by_name(session, class_name)

    if not klass:
        raise HTTPException(status_code=404, detail="Class not found or you don't have access")
    return class_public(session, klass)


@router.delete("/{class_id}")
def delete_class_endpoint(
        class_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    klass = get_class_by_id(session, class_id)
    if not klass:
        raise HTTPException(status_code=404, detail="Class not found")
    if current_user.role == TEACHER and klass.teacher != current_user.username:
        raise HTTPException(status_code=403, detail="Not authorized to delete this class")
    delete_class(session, klass)
    return {"message": "Class deleted successfully"}


@router.get("/{class_name}/students")
def class_students_endpoint(
        class_name: str,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    klass = get_owned_class(session, class_name, current_user.username)
    if not klass and current_user.role == ADMIN:
        klass = get_class_by_name(session, class_name)
    if not klass:
        raise HTTPException(status_code=404, detail="Class not found or you don't have access")
    return [
        {**student_view(s), "created_at": s.created_at}
        for s in class_students(session, klass)
    ]


@router.get("/{class_name}/people")
def class_people_endpoint(
        class_name: str,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_student)
):
    if not is_enrolled(session, class_name, current_user.username):
        raise HTTPException(status_code=404, detail="Class not found or you're not enrolled")

    klass = next(c for c in student_classes(session, current_user.username) if c.name == class_name)
    teacher = get_user_by_username(session, klass.teacher)
    return {
        "teacher": student_view(teacher) if teacher else None,
        "classmates": [student_view(s) for s in class_students(session, klass)],
    }


@router.delete("/{class_id}/leave")
def leave_class(
        class_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_student)
):
    klass = get_class_by_id(session, class_id)
    if not klass:
        raise HTTPException(status_code=404, detail="Class not found")
    if not remove_student_from_class(session, class_id, current_user.username):
        raise HTTPException(status_code=400, detail="You are not enrolled in this class")
    return {"message": "Left class successfully"}


@router.delete("/{class_id}/students/{username}")
def remove_student(
        class_id: int,
        username: str,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    klass = get_class_by_id(session, class_id)
    if not klass:
        raise HTTPException(status_code=404, detail="Class not found")
    if current_user.role == TEACHER and klass.teacher != current_user.username:
        raise HTTPException(status_code=403, detail="Not authorized to manage this class")
    if not remove_student_from_class(session, class_id, username):
        raise HTTPException(status_code=404, detail="Student not found in this class")
    logger.info(f"{current_user.username} removed {username} from {klass.name}")
    return {"message": "Student removed successfully"}


@student_router.get("/classes")
def my_classes(session: Session = Depends(get_session), current_user: User = Depends(require_student)):
    return [class_public(session, c) for c in student_classes(session, current_user.username)]
