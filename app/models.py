from typing import Optional, List, Dict, Any
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, UniqueConstraint
from datetime import datetime

STUDENT = "Student"
TEACHER = "Teacher"
ADMIN = "Admin"
ROLES = (STUDENT, TEACHER, ADMIN)

MAX_CREDIT_POINTS = 10


class ClassStudentLink(SQLModel, table=True):
    class_id: int = Field(foreign_key="class.id", primary_key=True)
    student_username: str = Field(primary_key=True, index=True)
    joined_at: datetime = Field(default_factory=datetime.utcnow)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(nullable=False)
    username: str = Field(index=True, nullable=False, unique=True)
    email: Optional[str] = Field(default=None, index=True, unique=True)
    hashed_password: str
    role: str = Field(default=STUDENT)  # 'Student', 'Teacher' or 'Admin'
    credit_points: int = Field(default=0)
    picture: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Class(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    section: Optional[str] = None
    course: Optional[str] = None
    year: Optional[str] = None
    code: str = Field(index=True, unique=True)
    teacher: str = Field(index=True)  # username
    bg: str = Field(default="#FFF0D8")
    teacher_picture: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Exam(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    class_name: str = Field(index=True)
    due: Optional[datetime] = None
    # [{"text", "type": "short"|"multiple", "options": [...], "correct_answer"}]
    questions: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    created_by: str = Field(index=True)
    manual_grading: bool = Field(default=False)
    allow_resubmission: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ExamSubmission(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("exam_id", "student", name="uq_submission_exam_student"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    student: str = Field(index=True)
    answers: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    raw_score: int = Field(default=0)
    final_score: Optional[int] = None
    total_questions: int = Field(default=0)
    class_name: Optional[str] = Field(default=None, index=True)
    class_course: Optional[str] = None
    class_year: Optional[str] = None
    credits_used: int = Field(default=0)
    feedback: Optional[str] = None
    manual_grading: bool = Field(default=False)
    graded_at: Optional[datetime] = None
    returned: bool = Field(default=False)
    submitted_at: datetime = Field(default_factory=datetime.utcnow)


class Grade(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    class_name: str = Field(index=True)
    student: str = Field(index=True)
    grade: str
    feedback: Optional[str] = ""
    exam_id: Optional[int] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Assignment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    class_name: str = Field(index=True)
    title: str
    description: Optional[str] = None
    due: datetime
    status: Optional[str] = Field(default="assigned")
    created_by: str
    submitted_file: Optional[str] = None
    student_username: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Announcement(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    teacher: str = Field(index=True)
    class_name: str = Field(index=True)
    message: str
    date: datetime = Field(default_factory=datetime.utcnow)
    exam_id: Optional[int] = None
    likes: int = Field(default=0)
    attachments: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    topic_id: Optional[int] = Field(default=None, foreign_key="topic.id")


class Material(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    type: str  # 'link', 'file', 'video', 'document'
    content: str
    class_name: str = Field(index=True)
    teacher: str = Field(index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class MaterialSubmission(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    material_id: int = Field(foreign_key="material.id", index=True)
    class_name: str
    student: str = Field(index=True)
    student_name: Optional[str] = None
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    score: Optional[float] = None
    feedback: Optional[str] = None
    status: str = Field(default="submitted")  # 'submitted', 'graded', 'returned'
    graded_at: Optional[datetime] = None
    submitted_at: datetime = Field(default_factory=datetime.utcnow)


class Comment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    content: str
    author: str = Field(index=True)
    author_role: str
    reference_type: str = Field(index=True)  # 'assignment', 'announcement', 'material', 'exam'
    reference_id: int = Field(index=True)
    class_name: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Reaction(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("user_id", "reference_type", "reference_id", name="uq_reaction_user_reference"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    username: str
    user_role: str
    reference_type: str = Field(index=True)
    reference_id: int = Field(index=True)
    reaction_type: str = Field(default="heart")  # 'heart', 'like', 'thumbs_up', 'thumbs_down'
    class_name: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    recipient: str = Field(index=True)
    sender: str
    type: str  # 'assignment', 'announcement', 'grade', 'comment', 'material', 'exam'
    message: str
    read: bool = Field(default=False, index=True)
    reference_id: Optional[int] = None
    class_name: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Message(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    class_name: str = Field(index=True)
    sender: str = Field(index=True)
    sender_name: Optional[str] = None
    recipient: str = Field(index=True)
    recipient_name: Optional[str] = None
    content: str
    read: bool = Field(default=False)
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Topic(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("class_name", "name", name="uq_topic_class_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    color: str = Field(default="#6c757d")
    class_name: str = Field(index=True)
    teacher: str
    order: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Form(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    owner: str = Field(index=True)
    class_name: Optional[str] = Field(default=None, index=True)
    collaborators: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    # each question carries a stable "id" assigned on save
    questions: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    sections: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    settings: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    theme: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    is_template: bool = Field(default=False, index=True)
    template_category: Optional[str] = None
    status: str = Field(default="draft")  # 'draft', 'published', 'closed'
    response_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class FormResponse(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    form_id: int = Field(foreign_key="form.id", index=True)
    respondent_username: Optional[str] = Field(default=None, index=True)
    respondent: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    answers: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    score: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    feedback: Optional[str] = None
    status: str = Field(default="submitted")  # 'submitted', 'graded'
    completion_time: int = Field(default=0)
    submitted_at: datetime = Field(default_factory=datetime.utcnow)


class RefreshToken(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id")
    token: str
    jti: Optional[str] = Field(index=True, nullable=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: datetime


class RevokedToken(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    jti: str = Field(index=True, unique=True)
    user_id: Optional[int] = None
    token_type: Optional[str] = None
    revoked_at: datetime = Field(default_factory=datetime.utcnow)
