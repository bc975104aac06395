import secrets
from sqlmodel import select, Session
from typing import List, Optional
from ..models import Class, ClassStudentLink, User, STUDENT

CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6


def generate_class_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def unique_class_code(session: Session, attempts: int = 10) -> str:
    """Draws codes until a free one is found; the last draw is returned after `attempts`."""
    code = generate_class_code()
    for _ in range(attempts - 1):
        if not get_class_by_code(session, code):
            break
        code = generate_class_code()
    return code


def get_class_by_id(session: Session, class_id: int):
    return session.get(Class, class_id)


def get_class_by_code(session: Session, code: str):
    return session.exec(select(Class).where(Class.code == code.upper())).first()


def get_class_by_name(session: Session, name: str):
    return session.exec(select(Class).where(Class.name == name)).first()


def get_owned_class(session: Session, name: str, teacher: str):
    return session.exec(select(Class).where(Class.name == name, Class.teacher == teacher)).first()


def list_classes(session: Session, teacher: Optional[str] = None, skip: int = 0, limit: int = 100):
    statement = select(Class)
    if teacher is not None:
        statement = statement.where(Class.teacher == teacher)
    return session.exec(statement.offset(skip).limit(limit)).all()


def teacher_class_names(session: Session, teacher: str) -> List[str]:
    return list(session.exec(select(Class.name).where(Class.teacher == teacher)).all())


def student_classes(session: Session, username: str):
    statement = (
        select(Class)
        .join(ClassStudentLink, ClassStudentLink.class_id == Class.id)
        .where(ClassStudentLink.student_username == username)
    )
    return session.exec(statement).all()


def student_class_names(session: Session, username: str) -> List[str]:
    return [c.name for c in student_classes(session, username)]


def is_enrolled(session: Session, class_name: str, username: str) -> bool:
    statement = (
        select(ClassStudentLink)
        .join(Class, ClassStudentLink.class_id == Class.id)
        .where(Class.name == class_name, ClassStudentLink.student_username == username)
    )
    return session.exec(statement).first() is not None


def student_usernames(session: Session, klass: Class) -> List[str]:
    statement = select(ClassStudentLink.student_username).where(ClassStudentLink.class_id == klass.id)
    return list(session.exec(statement).all())


def class_students(session: Session, klass: Class):
    usernames = student_usernames(session, klass)
    if not usernames:
        return []
    return session.exec(select(User).where(User.username.in_(usernames), User.role == STUDENT)).all()


def is_member(session: Session, class_name: str, username: str) -> bool:
    """True for the class teacher or an enrolled student."""
    klass = get_owned_class(session, class_name, username)
    return klass is not None or is_enrolled(session, class_name, username)


def add_student_to_class(session: Session, class_id: int, username: str):
    link = ClassStudentLink(class_id=class_id, student_username=username)
    session.add(link)
    session.commit()
    return link


def remove_student_from_class(session: Session, class_id: int, username: str):
    link = session.get(ClassStudentLink, (class_id, username))
    if not link:
        return False
    session.delete(link)
    session.commit()
    return True


def delete_class(session: Session, klass: Class):
    for link in session.exec(select(ClassStudentLink).where(ClassStudentLink.class_id == klass.id)).all():
        session.delete(link)
    session.delete(klass)
    session.commit()


def class_public(session: Session, klass: Class) -> dict:
    data = klass.model_dump()
    data["students"] = student_usernames(session, klass)
    return data


def create_class(session: Session, name: str, teacher: str, code: str, section: Optional[str] = None,
                 course: Optional[str] = None, year: Optional[str] = None, bg: Optional[str] = None):
    klass = Class(name=name, teacher=teacher, code=code.upper(), section=section, course=course, year=year)
    if bg:
        klass.bg = bg
    owner = session.exec(select(User).where(User.username == teacher)).first()
    if owner and owner.picture:
        klass.teacher_picture = owner.picture
    session.add(klass)
    session.commit()
    session.refresh(klass)
    return klass
