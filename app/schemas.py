from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Literal, Any, Dict
from datetime import datetime, timezone


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # stored datetimes are naive UTC
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ---------- auth / users ----------
class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    role: Literal["Student", "Teacher"]
    email: Optional[EmailStr] = None


class AdminRegister(BaseModel):
    name: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    email: EmailStr
    admin_key: str


class AdminUserCreate(BaseModel):
    name: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    role: Literal["Student", "Teacher", "Admin"]
    email: Optional[EmailStr] = None


class LoginRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    picture: Optional[str] = None


# ---------- classes ----------
class ClassCreate(BaseModel):
    name: str = Field(min_length=1)
    section: Optional[str] = None
    course: Optional[str] = None
    year: Optional[str] = None
    bg: Optional[str] = None


class AdminClassCreate(ClassCreate):
    teacher: str = Field(min_length=1)


class JoinClassRequest(BaseModel):
    code: str = Field(min_length=1)


# ---------- announcements / assignments ----------
class AnnouncementCreate(BaseModel):
    message: str = Field(min_length=1)
    class_name: str = Field(min_length=1)
    date: Optional[datetime] = None
    exam_id: Optional[int] = None
    topic_id: Optional[int] = None
    attachments: List[Dict[str, Any]] = []

    _tz = field_validator("date")(_naive_utc)


class AssignmentCreate(BaseModel):
    class_name: str = Field(min_length=1)
    title: str = Field(min_length=1)
    due: datetime
    description: Optional[str] = None
    status: Optional[str] = "assigned"

    _tz = field_validator("due")(_naive_utc)


class AssignmentSubmit(BaseModel):
    status: Optional[str] = "submitted"
    submitted_file: Optional[str] = None


# ---------- exams ----------
class QuestionIn(BaseModel):
    text: str
    type: Literal["short", "multiple"] = "short"
    options: List[str] = []
    correct_answer: Optional[str] = None


class ExamCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    class_name: Optional[str] = None
    questions: List[QuestionIn] = []
    due: Optional[datetime] = None
    manual_grading: bool = False
    allow_resubmission: bool = False

    _tz = field_validator("due")(_naive_utc)


class ExamUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    questions: List[QuestionIn] = []
    due: Optional[datetime] = None

    _tz = field_validator("due")(_naive_utc)


class AnswerIn(BaseModel):
    question_index: int
    answer: Optional[Any] = None


class ExamSubmit(BaseModel):
    answers: List[AnswerIn] = []


class ManualGrade(BaseModel):
    final_score: int
    feedback: Optional[str] = ""


# ---------- grades ----------
class GradeCreate(BaseModel):
    class_name: str = Field(min_length=1)
    student: str = Field(min_length=1)
    grade: str = Field(min_length=1)
    feedback: Optional[str] = ""
    exam_id: Optional[int] = None


class BulkGradeItem(BaseModel):
    student: Optional[str] = None
    grade: Optional[str] = None
    feedback: Optional[str] = ""
    exam_id: Optional[int] = None


class BulkGrades(BaseModel):
    class_name: str = Field(min_length=1)
    grades: List[BulkGradeItem]


class BulkIds(BaseModel):
    ids: List[int]


class BulkNotification(BaseModel):
    class_name: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: str = "announcement"


# ---------- materials ----------
class MaterialCreate(BaseModel):
    title: str = Field(min_length=1)
    type: Literal["link", "file", "video", "document"]
    content: str = Field(min_length=1)
    class_name: str = Field(min_length=1)
    description: Optional[str] = None


class MaterialUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[Literal["link", "file", "video", "document"]] = None
    content: Optional[str] = None


class MaterialSubmit(BaseModel):
    file_name: str = Field(min_length=1)
    file_path: str = Field(min_length=1)
    file_size: Optional[int] = None
    mime_type: Optional[str] = None


class MaterialGrade(BaseModel):
    score: Optional[float] = None
    feedback: Optional[str] = None


# ---------- comments / reactions ----------
class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    reference_type: Literal["assignment", "announcement", "material", "exam"]
    reference_id: int
    class_name: str = Field(min_length=1)


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1)


class ReactionToggle(BaseModel):
    reference_type: Literal["assignment", "announcement", "material", "exam", "comment"]
    reference_id: int
    reaction_type: Literal["heart", "like", "thumbs_up", "thumbs_down"] = "heart"
    class_name: str = Field(min_length=1)


# ---------- messages / topics ----------
class MessageCreate(BaseModel):
    class_name: str = Field(min_length=1)
    recipient: str = Field(min_length=1)
    content: str = Field(min_length=1)


class MessagesRead(BaseModel):
    class_name: str = Field(min_length=1)
    sender: str = Field(min_length=1)


class TopicCreate(BaseModel):
    name: str = Field(min_length=1)
    class_name: str = Field(min_length=1)
    color: Optional[str] = None


class TopicUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    order: Optional[int] = None


# ---------- reuse ----------
class ReuseAnnouncement(BaseModel):
    announcement_id: int
    target_class: str = Field(min_length=1)


class ReuseMaterial(BaseModel):
    material_id: int
    target_class: str = Field(min_length=1)


class ReuseExam(BaseModel):
    exam_id: int
    target_class: str = Field(min_length=1)
    new_due_date: Optional[datetime] = None

    _tz = field_validator("new_due_date")(_naive_utc)


# ---------- forms ----------
class FormIn(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    class_name: Optional[str] = None
    questions: List[Dict[str, Any]] = []
    sections: List[Dict[str, Any]] = []
    settings: Dict[str, Any] = {}
    theme: Dict[str, Any] = {}
    is_template: bool = False
    template_category: Optional[Literal["feedback", "quiz", "survey", "registration", "custom"]] = None
    status: Literal["draft", "published", "closed"] = "draft"


class FormUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    class_name: Optional[str] = None
    questions: Optional[List[Dict[str, Any]]] = None
    sections: Optional[List[Dict[str, Any]]] = None
    settings: Optional[Dict[str, Any]] = None
    theme: Optional[Dict[str, Any]] = None
    status: Optional[Literal["draft", "published", "closed"]] = None


class CollaboratorIn(BaseModel):
    collaborator_username: str = Field(min_length=1)


class FormAnswerIn(BaseModel):
    question_id: str
    answer: Optional[Any] = None


class FormResponseIn(BaseModel):
    answers: List[FormAnswerIn] = []
    respondent: Dict[str, Any] = {}
    start_time: Optional[datetime] = None

    _tz = field_validator("start_time")(_naive_utc)


class FormResponseGrade(BaseModel):
    manual_scores: Optional[Dict[str, float]] = None
    feedback: Optional[str] = None
    score: Optional[Dict[str, float]] = None


class SendToClass(BaseModel):
    target_classes: List[str] = Field(min_length=1)
    new_deadline: Optional[datetime] = None

    _tz = field_validator("new_deadline")(_naive_utc)
