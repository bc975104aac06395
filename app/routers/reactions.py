from fastapi import APIRouter, Depends, HTTPException, Response
from sqlmodel import Session, select
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from typing import Optional
from datetime import datetime
from ..db import get_session
from ..models import User, Reaction, STUDENT
from ..schemas import ReactionToggle
from ..dependencies.auth import get_current_user
from ..exceptions import conflict

router = APIRouter(prefix="/reactions", tags=["reactions"])


def _require_reference(reference_type: Optional[str], reference_id: Optional[int]):
    if not reference_type or reference_id is None:
        raise HTTPException(status_code=400, detail="Required fields: reference_type, reference_id")


@router.get("")
def reaction_counts(
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    _require_reference(reference_type, reference_id)
    counts = session.exec(
        select(Reaction.reaction_type, func.count(Reaction.id))
        .where(Reaction.reference_type == reference_type, Reaction.reference_id == reference_id)
        .group_by(Reaction.reaction_type)
    ).all()
    mine = session.exec(
        select(Reaction).where(
            Reaction.user_id == current_user.id,
            Reaction.reference_type == reference_type,
            Reaction.reference_id == reference_id,
        )
    ).first()

    reactions = {reaction_type: count for reaction_type, count in counts}
    return {
        "reactions": reactions,
        "user_reaction": mine.reaction_type if mine else None,
        "total_reactions": sum(reactions.values()),
    }


@router.post("")
def toggle_reaction(
        payload: ReactionToggle,
        response: Response,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    """
    One reaction per user and item: the same type again removes it,
    another type replaces it.
    """
    existing = session.exec(
        select(Reaction).where(
            Reaction.user_id == current_user.id,
            Reaction.reference_type == payload.reference_type,
            Reaction.reference_id == payload.reference_id,
        )
    ).first()

    if existing:
        if existing.reaction_type == payload.reaction_type:
            session.delete(existing)
            session.commit()
            return {"message": "Reaction removed", "action": "removed", "reaction_type": payload.reaction_type}
        existing.reaction_type = payload.reaction_type
        existing.updated_at = datetime.utcnow()
        session.add(existing)
        session.commit()
        return {"message": "Reaction updated", "action": "updated", "reaction_type": payload.reaction_type}

    reaction = Reaction(
        user_id=current_user.id,
        username=current_user.username,
        user_role=current_user.role,
        reference_type=payload.reference_type,
        reference_id=payload.reference_id,
        reaction_type=payload.reaction_type,
        class_name=payload.class_name,
    )
    session.add(reaction)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise conflict("Reaction already recorded", {"reference_id": payload.reference_id})
    session.refresh(reaction)
    response.status_code = 201
    return {"message": "Reaction added", "action": "added", "reaction_type": payload.reaction_type, "reaction": reaction}


@router.get("/details")
def reaction_details(
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        reaction_type: Optional[str] = None,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    _require_reference(reference_type, reference_id)
    statement = select(Reaction).where(Reaction.reference_type == reference_type, Reaction.reference_id == reference_id)
    if reaction_type:
        statement = statement.where(Reaction.reaction_type == reaction_type)
    reactions = session.exec(statement.order_by(Reaction.created_at.desc())).all()
    return [
        {"username": r.username, "user_role": r.user_role, "reaction_type": r.reaction_type, "created_at": r.created_at}
        for r in reactions
    ]


@router.delete("/{reaction_id}")
def delete_reaction(reaction_id: int, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    reaction = session.get(Reaction, reaction_id)
    if not reaction:
        raise HTTPException(status_code=404, detail="Reaction not found")
    if current_user.role == STUDENT and reaction.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Not authorized to delete this reaction")

    session.delete(reaction)
    session.commit()
    return {"message": "Reaction deleted successfully"}
