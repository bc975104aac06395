from sqlmodel import select, Session
from typing import Optional
from ..models import User, STUDENT


def create_user(session: Session, name: str, username: str, hashed_password: str,
                role: str = STUDENT, email: Optional[str] = None):
    user = User(name=name, username=username, email=email, hashed_password=hashed_password, role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def get_user_by_username(session: Session, username: str):
    return session.exec(select(User).where(User.username == username)).first()


def get_user_by_email(session: Session, email: str):
    statement = select(User).where(User.email == email)
    result = session.exec(statement).first()
    return result


def user_public(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "credit_points": user.credit_points,
        "picture": user.picture,
        "created_at": user.created_at,
    }
