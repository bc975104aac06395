from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select
from typing import Optional
from datetime import datetime
from ..db import get_session
from ..models import User, Comment, STUDENT
from ..schemas import CommentCreate, CommentUpdate
from ..dependencies.auth import get_current_user

router = APIRouter(prefix="/comments", tags=["comments"])


def get_comment_or_404(session: Session, comment_id: int) -> Comment:
    comment = session.get(Comment, comment_id)
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


@router.get("")
def list_comments(
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=500),
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    if not reference_type or reference_id is None:
        raise HTTPException(status_code=400, detail="Required fields: reference_type, reference_id")
    statement = (
        select(Comment)
        .where(Comment.reference_type == reference_type, Comment.reference_id == reference_id)
        .order_by(Comment.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return session.exec(statement).all()


@router.post("", status_code=201)
def add_comment(payload: CommentCreate, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    comment = Comment(
        content=payload.content,
        author=current_user.username,
        author_role=current_user.role,
        reference_type=payload.reference_type,
        reference_id=payload.reference_id,
        class_name=payload.class_name,
    )
    session.add(comment)
    session.commit()
    session.refresh(comment)
    return {"message": "Comment added successfully", "comment": comment}


@router.put("/{comment_id}")
def update_comment(
        comment_id: int,
        payload: CommentUpdate,
        session: Session = Depends(get_session),
        current_user: User = Depends(get_current_user)
):
    comment = get_comment_or_404(session, comment_id)
    if comment.author != current_user.username:
        raise HTTPException(status_code=403, detail="Not authorized to update this comment")

    comment.content = payload.content
    comment.updated_at = datetime.utcnow()
    session.add(comment)
    session.commit()
    session.refresh(comment)
    return {"message": "Comment updated successfully", "comment": comment}


@router.delete("/{comment_id}")
def delete_comment(comment_id: int, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    comment = get_comment_or_404(session, comment_id)
    # teachers and admins moderate; students only remove their own
    if current_user.role == STUDENT and comment.author != current_user.username:
        raise HTTPException(status_code=403, detail="Not authorized to delete this comment")

    session.delete(comment)
    session.commit()
    return {"message": "Comment deleted successfully"}
