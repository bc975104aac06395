from .email import send_email, queue_announcement_email, email_enabled

__all__ = [
    "send_email",
    "queue_announcement_email",
    "email_enabled",
]
