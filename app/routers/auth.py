from fastapi import APIRouter, Depends, HTTPException, status, Body
from fastapi.security import HTTPAuthorizationCredentials
from sqlmodel import Session, select
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from datetime import timedelta, datetime
import logging
import os
from ..db import get_session
from ..schemas import UserCreate, AdminRegister, LoginRequest, RefreshRequest, LogoutRequest
from ..crud.user import get_user_by_username, get_user_by_email, create_user, user_public
from ..models import RefreshToken, User, ADMIN
from ..utils.security import (
    hash_password,
    verify_password,
    token_claims,
    create_access_token,
    create_refresh_token,
    decode_token,
    is_token_revoked,
    revoke_token,
    log_login_attempt,
    log_refresh_attempt,
    REFRESH_TOKEN_EXPIRE_DAYS,
)
from ..dependencies.auth import get_current_user, bearer_scheme

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _identity_taken(session: Session, username: str, email: str = None) -> bool:
    conditions = [User.username == username]
    if email:
        conditions.append(User.email == email)
    return session.exec(select(User).where(or_(*conditions))).first() is not None


def register_user(session: Session, name: str, username: str, password: str, role: str, email: str = None) -> User:
    if _identity_taken(session, username, email):
        raise HTTPException(status_code=400, detail="Username or email already exists")
    try:
        return create_user(session, name=name, username=username, email=email,
                           hashed_password=hash_password(password), role=role)
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=400, detail="Username or email already exists")


def _issue_tokens(session: Session, user: User) -> dict:
    claims = token_claims(user)
    access_token, access_jti = create_access_token(claims)
    refresh_token, refresh_jti = create_refresh_token(claims)

    expires_at = datetime.utcnow() + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
    db_refresh = RefreshToken(user_id=user.id, token=refresh_token, jti=refresh_jti, expires_at=expires_at)
    session.add(db_refresh)
    session.commit()

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "jti": access_jti,
    }


@router.post("/register", status_code=201)
def register(data: UserCreate, session: Session = Depends(get_session)):
    user = register_user(session, data.name, data.username, data.password, data.role, data.email)
    logger.info(f"Registered {user.role} {user.username}")
    return {"message": "User registered successfully", "user": user_public(user)}


@router.post("/register-admin", status_code=201)
def register_admin(data: AdminRegister, session: Session = Depends(get_session)):
    setup_key = os.getenv("ADMIN_SETUP_KEY")
    if not setup_key or data.admin_key != setup_key:
        raise HTTPException(status_code=403, detail="Invalid admin key")
    user = register_user(session, data.name, data.username, data.password, ADMIN, data.email)
    logger.info(f"Registered admin {user.username}")
    return {"message": "Admin user registered successfully", "user": user_public(user)}


@router.post("/login")
def login(data: LoginRequest, session: Session = Depends(get_session)):
    identifier = data.username or data.email
    if not identifier:
        raise HTTPException(status_code=400, detail="Username and password are required")

    if data.username:
        user = get_user_by_username(session, data.username)
    else:
        user = get_user_by_email(session, data.email)

    if not user or not verify_password(data.password, user.hashed_password):
        log_login_attempt(identifier, False)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    tokens = _issue_tokens(session, user)
    log_login_attempt(identifier, True)
    return {**tokens, "user": user_public(user)}


@router.post("/refresh")
def refresh_token_endpoint(payload: RefreshRequest = Body(...), session: Session = Depends(get_session)):
    decoded = decode_token(payload.refresh_token)
    if not decoded or decoded.get("type") != "refresh":
        log_refresh_attempt(None, False)
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    jti = decoded.get("jti")
    user_id = decoded.get("sub")

    if is_token_revoked(session, jti):
        log_refresh_attempt(user_id, False)
        raise HTTPException(status_code=401, detail="Token has been revoked")

    stmt = select(RefreshToken).where(RefreshToken.jti == jti, RefreshToken.user_id == int(user_id))
    db_token = session.exec(stmt).first()
    if not db_token:
        log_refresh_attempt(user_id, False)
        raise HTTPException(status_code=401, detail="Refresh token not found")

    if db_token.expires_at < datetime.utcnow():
        revoke_token(session, jti=jti, user_id=int(user_id), token_type="refresh")
        log_refresh_attempt(user_id, False)
        raise HTTPException(status_code=401, detail="Refresh token expired")

    user = session.get(User, int(user_id))
    if not user:
        raise HTTPException(status_code=401, detail="User no longer exists")

    # rotation: the used refresh token cannot be presented again
    revoke_token(session, jti=jti, user_id=user.id, token_type="refresh")
    session.delete(db_token)
    session.commit()

    tokens = _issue_tokens(session, user)
    log_refresh_attempt(user_id, True)
    return tokens


@router.post("/logout")
def logout(
        payload: LogoutRequest = Body(default=LogoutRequest()),
        credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
        current_user: User = Depends(get_current_user),
        session: Session = Depends(get_session)
):
    """
    Revokes the access token used for the call and, when given, the refresh token.
    """
    access = decode_token(credentials.credentials)
    revoke_token(session, jti=access.get("jti"), user_id=current_user.id, token_type="access")

    if payload.refresh_token:
        decoded = decode_token(payload.refresh_token)
        if not decoded or decoded.get("type") != "refresh":
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        if decoded.get("sub") != str(current_user.id):
            raise HTTPException(status_code=401, detail="Refresh token does not belong to current user")

        jti = decoded.get("jti")
        revoke_token(session, jti=jti, user_id=current_user.id, token_type="refresh")

        stmt = select(RefreshToken).where(RefreshToken.jti == jti, RefreshToken.user_id == current_user.id)
        db_token = session.exec(stmt).first()
        if db_token:
            session.delete(db_token)
            session.commit()

    return {"message": "Logged out successfully"}


@router.get("/verify-token")
def verify_token(current_user: User = Depends(get_current_user)):
    return {"valid": True, "user": user_public(current_user)}
