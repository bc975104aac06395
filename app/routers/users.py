from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select
import logging
from ..db import get_session
from ..dependencies.auth import get_current_user, require_admin, require_teacher_or_admin
from ..models import User, Class, RefreshToken, Reaction, MAX_CREDIT_POINTS, TEACHER
from ..schemas import ProfileUpdate, AdminUserCreate, AdminClassCreate
from ..crud.user import get_user_by_email, user_public
from ..crud.classes import get_class_by_id, list_classes, delete_class, class_public
from .auth import register_user
from .classes import new_class

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.get("/profile")
def get_profile(session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    clamped = min(max(current_user.credit_points or 0, 0), MAX_CREDIT_POINTS)
    if clamped != current_user.credit_points:
        logger.info(f"Clamping credit points for {current_user.username} from {current_user.credit_points} to {clamped}")
        current_user.credit_points = clamped
        session.add(current_user)
        session.commit()
        session.refresh(current_user)
    return user_public(current_user)


@router.put("/profile")
def update_profile(
        payload: ProfileUpdate,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    if payload.email and payload.email != current_user.email:
        if get_user_by_email(session, payload.email):
            raise HTTPException(status_code=400, detail="Email already in use")
        current_user.email = payload.email

    if payload.name and payload.name.strip():
        current_user.name = payload.name.strip()

    if payload.picture is not None:
        current_user.picture = payload.picture or None
        # classes show the teacher's picture
        for klass in session.exec(select(Class).where(Class.teacher == current_user.username)).all():
            klass.teacher_picture = current_user.picture
            session.add(klass)

    session.add(current_user)
    session.commit()
    session.refresh(current_user)
    return user_public(current_user)


# ---------- admin ----------
@router.get("/admin/users")
def admin_list_users(
        page: int = Query(1, ge=1),
        limit: int = Query(100, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(require_admin)
):
    users = session.exec(select(User).offset((page - 1) * limit).limit(limit)).all()
    return [user_public(u) for u in users]


@router.post("/admin/users", status_code=201)
def admin_create_user(
        payload: AdminUserCreate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_admin)
):
    user = register_user(session, payload.name, payload.username, payload.password, payload.role, payload.email)
    logger.info(f"Admin {current_user.username} created {user.role} {user.username}")
    return {"message": "User created successfully", "user": user_public(user)}


@router.delete("/admin/users/{user_id}")
def admin_delete_user(
        user_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_admin)
):
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    username = user.username
    for model in (RefreshToken, Reaction):
        for row in session.exec(select(model).where(model.user_id == user.id)).all():
            session.delete(row)
    session.delete(user)
    session.commit()
    logger.info(f"Admin {current_user.username} deleted user {username}")
    return {"message": "User deleted successfully"}


@router.get("/admin/classes")
def admin_list_classes(
        page: int = Query(1, ge=1),
        limit: int = Query(100, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    teacher = current_user.username if current_user.role == TEACHER else None
    classes = list_classes(session, teacher=teacher, skip=(page - 1) * limit, limit=limit)
    return [class_public(session, c) for c in classes]


@router.post("/admin/classes", status_code=201)
def admin_create_class(
        payload: AdminClassCreate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    klass = new_class(session, payload, payload.teacher)
    return {"message": "Class created successfully", "cls": class_public(session, klass)}


@router.delete("/admin/classes/{class_id}")
def admin_delete_class(
        class_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_admin)
):
    klass = get_class_by_id(session, class_id)
    if not klass:
        raise HTTPException(status_code=404, detail="Class not found")
    delete_class(session, klass)
    return {"message": "Class deleted successfully"}
