from .user import get_user_by_email, get_user_by_username, create_user, user_public
from .classes import *
from .notifications import create_notifications
from .grades import upsert_grade, find_grade

__all__ = [
    "get_user_by_email",
    "get_user_by_username",
    "create_user",
    "user_public",
    "generate_class_code",
    "unique_class_code",
    "get_class_by_id",
    "get_class_by_code",
    "get_class_by_name",
    "get_owned_class",
    "is_enrolled",
    "is_member",
    "student_usernames",
    "create_notifications",
    "upsert_grade",
    "find_grade",
]
