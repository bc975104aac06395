from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session
from app.db import get_session
from app.models import User, ADMIN, STUDENT, TEACHER
from app.utils.security import decode_token, is_token_revoked, security_logger
from typing import Optional

bearer_scheme = HTTPBearer(auto_error=False)


def user_from_token(token: str, db: Session) -> User:
    payload = decode_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired access token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # token must be access
    if payload.get("type") != "access":
        security_logger.warning("Token with wrong type used for access endpoint")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")

    jti = payload.get("jti")
    if is_token_revoked(db, jti):
        security_logger.warning(f"Attempt with revoked token jti={jti}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has been revoked")

    user_id = payload.get("sub")
    if user_id is None:
        security_logger.warning("Access token without subject (sub) field")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = db.get(User, int(user_id))
    if not user:
        security_logger.warning(f"Access attempt with deleted user_id={user_id}")
        raise HTTPException(status_code=401, detail="User no longer exists")

    return user


def get_current_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: Session = Depends(get_session)
) -> User:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_from_token(credentials.credentials, db)


def get_optional_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: Session = Depends(get_session)
) -> Optional[User]:
    """Resolves the caller when a valid token is sent; anonymous otherwise."""
    if credentials is None:
        return None
    try:
        return user_from_token(credentials.credentials, db)
    except HTTPException:
        return None


def require_role(*roles: str):
    """
    Dependency factory that ensures current user has one of the given roles.
    Example: require_role("Teacher", "Admin")
    """

    def role_checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access forbidden: {' or '.join(roles)} role required"
            )
        return current_user

    return role_checker


require_student = require_role(STUDENT)
require_teacher_or_admin = require_role(TEACHER, ADMIN)
require_admin = require_role(ADMIN)
