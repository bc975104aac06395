import os
import logging
from html import escape
from typing import Dict, Any, List
import requests
from .celery_app import celery_app

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def email_enabled() -> bool:
    return bool(os.getenv("RESEND_API_KEY"))


@celery_app.task(name="send_email")
def send_email(to: List[str], subject: str, html: str) -> Dict[str, Any]:
    """Delivers one message through the Resend HTTP API"""
    api_key = os.getenv("RESEND_API_KEY")
    if not api_key:
        logger.warning("RESEND_API_KEY not set, email to %s skipped", to)
        return {"success": False, "error": "Email not configured"}

    payload = {
        "from": os.getenv("EMAIL_FROM", "no-reply@classroom.local"),
        "to": to,
        "subject": subject,
        "html": html,
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json"
    }

    try:
        resp = requests.post(RESEND_URL, json=payload, headers=headers, timeout=15)
    except requests.RequestException as e:
        logger.error(f"Network error sending email: {e}")
        return {"success": False, "error": str(e)}

    if resp.status_code >= 400:
        logger.error("Email provider error %s: %s", resp.status_code, resp.text)
        return {"success": False, "error": f"Email provider returned {resp.status_code}"}

    return {"success": True, "id": resp.json().get("id")}


def queue_announcement_email(recipients: List[str], class_name: str, teacher_name: str, message: str):
    """Queues the announcement email; does nothing when email is not configured."""
    if not recipients or not email_enabled():
        return
    subject = f"New announcement in {class_name}"
    html = (
        f"<h2>{escape(class_name)}</h2>"
        f"<p><strong>{escape(teacher_name)}</strong> posted a new announcement:</p>"
        f"<p>{escape(message)}</p>"
    )
    try:
        send_email.delay(recipients, subject, html)
    except Exception as e:
        logger.error(f"Failed to queue announcement email for {class_name}: {e}")
