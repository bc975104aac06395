from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlmodel import Session, select
from typing import Optional, List, Dict, Any
from datetime import datetime
import uuid
import logging
from ..db import get_session
from ..models import User, Form, FormResponse, STUDENT
from ..schemas import FormIn, FormUpdate, CollaboratorIn, FormResponseIn, FormResponseGrade, SendToClass
from ..dependencies.auth import get_current_user, get_optional_user, require_teacher_or_admin
from ..crud.classes import student_class_names
from ..exceptions import conflict
from ..processing.form_grading import (
    availability_status,
    grade_response,
    question_analytics,
    quiz_summary,
    parse_time,
)
from ..processing.gradebook import write_responses_csv
from .classes import writable_class

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/forms", tags=["forms"])

DEFAULT_SETTINGS: Dict[str, Any] = {
    "is_quiz": False,
    "auto_grade": False,
    "show_correct_answers": False,
    "allow_multiple_responses": False,
    "collect_email": True,
    "require_login": True,
    "accepting_responses": True,
    "open_at": None,
    "close_at": None,
    "deadline": None,
    "confirmation_message": "Your response has been recorded.",
}


def form_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {**DEFAULT_SETTINGS, **(settings or {})}


def with_question_ids(questions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Gives every question a stable id; answers refer to questions by it."""
    return [{**q, "id": str(q.get("id") or uuid.uuid4().hex)} for q in questions]


def get_form_or_404(session: Session, form_id: int) -> Form:
    form = session.get(Form, form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


def is_editor(form: Form, user: Optional[User]) -> bool:
    return user is not None and (form.owner == user.username or user.username in (form.collaborators or []))


def editable_form(session: Session, form_id: int, user: User, message: str) -> Form:
    form = get_form_or_404(session, form_id)
    if not is_editor(form, user):
        raise HTTPException(status_code=403, detail=message)
    return form


def owned_form(session: Session, form_id: int, user: User, message: str) -> Form:
    form = get_form_or_404(session, form_id)
    if form.owner != user.username:
        raise HTTPException(status_code=403, detail=message)
    return form


def form_view(form: Form, user: Optional[User] = None) -> dict:
    data = form.model_dump()
    data["settings"] = form_settings(form.settings)
    data["availability_status"] = availability_status(data["settings"])
    if not is_editor(form, user) and not data["settings"]["show_correct_answers"]:
        hidden = ("correct_answer", "enumeration_answers")
        data["questions"] = [{k: v for k, v in q.items() if k not in hidden} for q in form.questions or []]
    return data


@router.get("")
def list_forms(session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    forms = session.exec(select(Form).order_by(Form.created_at.desc())).all()
    if current_user.role == STUDENT:
        classes = set(student_class_names(session, current_user.username))
        return [
            form_view(f, current_user) for f in forms
            if f.status == "published"
            and (f.class_name in classes or not form_settings(f.settings)["require_login"])
        ]
    return [form_view(f, current_user) for f in forms if is_editor(f, current_user)]


@router.get("/templates/all")
def list_templates(session: Session = Depends(get_session)):
    return session.exec(select(Form).where(Form.is_template == True).order_by(Form.created_at.desc())).all()  # noqa: E712


@router.post("/templates/{template_id}/use", status_code=201)
def use_template(
        template_id: int,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    template = session.get(Form, template_id)
    if not template or not template.is_template:
        raise HTTPException(status_code=404, detail="Template not found")

    form = Form(
        title=template.title,
        description=template.description,
        owner=current_user.username,
        questions=with_question_ids([dict(q) for q in template.questions or []]),
        sections=list(template.sections or []),
        settings=dict(template.settings or {}),
        theme=dict(template.theme or {}),
        template_category=template.template_category,
        status="draft",
    )
    session.add(form)
    session.commit()
    session.refresh(form)
    return form


@router.get("/{form_id}")
def get_form(form_id: int, session: Session = Depends(get_session), current_user: Optional[User] = Depends(get_optional_user)):
    return form_view(get_form_or_404(session, form_id), current_user)


@router.post("", status_code=201)
def create_form(payload: FormIn, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    if payload.class_name:
        writable_class(session, payload.class_name, current_user)
    data = payload.model_dump()
    data["questions"] = with_question_ids(data["questions"])
    form = Form(**data, owner=current_user.username)
    session.add(form)
    session.commit()
    session.refresh(form)
    logger.info(f"Form {form.id} created by {current_user.username}")
    return form


@router.put("/{form_id}")
def update_form(
        form_id: int,
        payload: FormUpdate,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    form = editable_form(session, form_id, current_user, "Not authorized to edit this form")
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("questions") is not None:
        changes["questions"] = with_question_ids(changes["questions"])
    for field, value in changes.items():
        if value is not None:
            setattr(form, field, value)
    form.updated_at = datetime.utcnow()
    session.add(form)
    session.commit()
    session.refresh(form)
    return form


@router.delete("/{form_id}")
def delete_form(form_id: int, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    form = owned_form(session, form_id, current_user, "Only the owner can delete this form")
    responses = session.exec(select(FormResponse).where(FormResponse.form_id == form_id)).all()
    for response in responses:
        session.delete(response)
    session.delete(form)
    session.commit()
    logger.info(f"Form {form_id} and {len(responses)} responses deleted by {current_user.username}")
    return {"message": "Form and all responses deleted successfully"}


@router.post("/{form_id}/collaborators")
def add_collaborator(
        form_id: int,
        payload: CollaboratorIn,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    form = owned_form(session, form_id, current_user, "Only the owner can add collaborators")
    if payload.collaborator_username not in (form.collaborators or []):
        form.collaborators = list(form.collaborators or []) + [payload.collaborator_username]
        session.add(form)
        session.commit()
        session.refresh(form)
    return form


@router.delete("/{form_id}/collaborators/{username}")
def remove_collaborator(
        form_id: int,
        username: str,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    form = owned_form(session, form_id, current_user, "Only the owner can remove collaborators")
    form.collaborators = [c for c in form.collaborators or [] if c != username]
    session.add(form)
    session.commit()
    session.refresh(form)
    return form


@router.post("/{form_id}/responses", status_code=201)
def submit_response(
        form_id: int,
        payload: FormResponseIn,
        session: Session = Depends(get_session),
        current_user: Optional[User] = Depends(get_optional_user)
):
    form = get_form_or_404(session, form_id)
    settings = form_settings(form.settings)
    now = datetime.utcnow()

    if not settings["accepting_responses"]:
        raise HTTPException(status_code=400, detail="Form is no longer accepting responses")
    open_at = parse_time(settings["open_at"])
    if open_at and now < open_at:
        raise HTTPException(status_code=400, detail="Form is not yet available")
    closing = parse_time(settings["close_at"]) or parse_time(settings["deadline"])
    if closing and now > closing:
        raise HTTPException(status_code=400, detail="Form has closed")
    if settings["require_login"] and current_user is None:
        raise HTTPException(status_code=401, detail="Login required to submit this form")

    if current_user is not None and not settings["allow_multiple_responses"]:
        existing = session.exec(
            select(FormResponse).where(
                FormResponse.form_id == form_id,
                FormResponse.respondent_username == current_user.username,
            )
        ).first()
        if existing:
            raise conflict(
                "You have already submitted this form. Multiple submissions are not allowed.",
                {"form_id": form_id},
            )

    is_quiz = bool(settings["is_quiz"])
    graded, score = grade_response(form.questions or [], [a.model_dump() for a in payload.answers], is_quiz)
    score["auto_graded"] = is_quiz and bool(settings["auto_grade"])

    respondent = dict(payload.respondent)
    if current_user is not None:
        respondent.setdefault("name", current_user.name)
        respondent.setdefault("email", current_user.email)

    response = FormResponse(
        form_id=form_id,
        respondent_username=current_user.username if current_user else None,
        respondent=respondent,
        answers=graded,
        score=score,
        status="graded" if score["auto_graded"] else "submitted",
        completion_time=max(int((now - payload.start_time).total_seconds()), 0) if payload.start_time else 0,
        submitted_at=now,
    )
    session.add(response)
    form.response_count = (form.response_count or 0) + 1
    session.add(form)
    session.commit()
    session.refresh(response)

    return {
        "message": settings["confirmation_message"],
        "response_id": response.id,
        "score": score if settings["show_correct_answers"] else None,
    }


@router.get("/{form_id}/responses")
def list_responses(form_id: int, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    editable_form(session, form_id, current_user, "Not authorized to view responses")
    return session.exec(
        select(FormResponse).where(FormResponse.form_id == form_id).order_by(FormResponse.submitted_at.desc())
    ).all()


@router.get("/{form_id}/analytics")
def form_analytics(form_id: int, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    form = editable_form(session, form_id, current_user, "Not authorized to view analytics")
    is_quiz = bool(form_settings(form.settings)["is_quiz"])
    responses = [r.model_dump() for r in session.exec(select(FormResponse).where(FormResponse.form_id == form_id)).all()]

    times = [r["completion_time"] or 0 for r in responses]
    analytics = {
        "total_responses": len(responses),
        "average_completion_time": sum(times) / len(times) if times else 0,
        "question_analytics": [question_analytics(q, responses, is_quiz) for q in form.questions or []],
    }
    if is_quiz:
        analytics["quiz_analytics"] = quiz_summary([(r["score"] or {}).get("percentage", 0) for r in responses])
    return analytics


@router.get("/{form_id}/export")
def export_responses(form_id: int, session: Session = Depends(get_session), current_user: User = Depends(require_teacher_or_admin)):
    form = editable_form(session, form_id, current_user, "Not authorized to export responses")
    responses = session.exec(
        select(FormResponse).where(FormResponse.form_id == form_id).order_by(FormResponse.submitted_at)
    ).all()
    content = write_responses_csv(
        form.questions or [],
        [r.model_dump() for r in responses],
        bool(form_settings(form.settings)["is_quiz"]),
    )
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="form-responses-{form.id}.csv"'},
    )


@router.put("/{form_id}/responses/{response_id}/grade")
def grade_form_response(
        form_id: int,
        response_id: int,
        payload: FormResponseGrade,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    editable_form(session, form_id, current_user, "Not authorized to grade this form")
    response = session.get(FormResponse, response_id)
    if not response or response.form_id != form_id:
        raise HTTPException(status_code=404, detail="Response not found")

    if payload.manual_scores:
        answers = []
        for answer in response.answers or []:
            entry = dict(answer)
            qid = str(entry.get("question_id"))
            if qid in payload.manual_scores:
                entry["manual_score"] = payload.manual_scores[qid]
            answers.append(entry)
        response.answers = answers
    if payload.feedback is not None:
        response.feedback = payload.feedback
    if payload.score is not None:
        response.score = {**(response.score or {}), **payload.score}
    response.status = "graded"

    session.add(response)
    session.commit()
    session.refresh(response)
    return {"message": "Grades saved successfully", "response": response}


@router.post("/{form_id}/send-to-class")
def send_to_class(
        form_id: int,
        payload: SendToClass,
        session: Session = Depends(get_session),
        current_user: User = Depends(require_teacher_or_admin)
):
    original = editable_form(session, form_id, current_user, "You can only copy your own forms")
    for class_name in payload.target_classes:
        writable_class(session, class_name, current_user)

    settings = dict(original.settings or {})
    if payload.new_deadline:
        settings["deadline"] = payload.new_deadline.isoformat()

    created = []
    for class_name in payload.target_classes:
        copy = Form(
            title=original.title,
            description=original.description,
            owner=current_user.username,
            class_name=class_name,
            questions=[dict(q) for q in original.questions or []],
            sections=list(original.sections or []),
            settings=dict(settings),
            theme=dict(original.theme or {}),
            status="published",
        )
        session.add(copy)
        created.append(copy)
    session.commit()
    for copy in created:
        session.refresh(copy)

    return {"message": f"Form sent to {len(created)} class(es) successfully", "forms": created}
