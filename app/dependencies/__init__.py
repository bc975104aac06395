from .auth import (
    get_current_user,
    get_optional_user,
    require_role,
    require_student,
    require_teacher_or_admin,
    require_admin,
)

__all__ = [
    "get_current_user",
    "get_optional_user",
    "require_role",
    "require_student",
    "require_teacher_or_admin",
    "require_admin",
]
