import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from db.deps import get_db
from authentication.schemas import GoogleAuthRequest, ProfileResponse, UserResponse
from authentication.security import generate_token, initial_role_for, token_expiry
from authentication.deps import get_bearer_token, get_current_user
from authentication.repository import (
    cleanup_expired_tokens,
    create_auth_token,
    create_user,
    delete_token,
    find_user_by_email,
    find_user_by_id,
    update_user_login,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/google")
def google_auth(payload: GoogleAuthRequest, db: Session = Depends(get_db)):
    if not payload.email or not payload.googleId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    email = payload.email.strip().lower()
    user = find_user_by_email(db, email)
    if user is None:
        user = create_user(
            db,
            email=email,
            google_id=payload.googleId,
            name=payload.name,
            profile_picture=payload.picture,
            role=initial_role_for(email),
        )
        logger.info("AUTH: created user=%s role=%s", email, user.role)
    else:
        if user.status != "active":
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")
        update_user_login(
            db,
            user,
            google_id=payload.googleId,
            name=payload.name,
            profile_picture=payload.picture,
        )

    token = generate_token()
    expires_at = token_expiry()
    create_auth_token(db, user_id=user.user_id, token=token, expires_at=expires_at)
    db.commit()

    return {
        "success": True,
        "token": token,
        "user": UserResponse.model_validate(user).model_dump(),
        "expiresAt": expires_at.isoformat() + "Z",
    }


@router.post("/logout")
def logout(token: str | None = Depends(get_bearer_token), db: Session = Depends(get_db)):
    if token:
        delete_token(db, token)
        db.commit()
    return {"success": True, "message": "Logged out successfully"}


@router.get("/profile")
def profile(current_user: Any = Depends(get_current_user), db: Session = Depends(get_db)):
    user = find_user_by_id(db, current_user.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return {"success": True, "user": ProfileResponse.model_validate(user).model_dump(mode="json")}


@router.get("/cleanup-tokens")
def cleanup_tokens(db: Session = Depends(get_db)):
    deleted = cleanup_expired_tokens(db)
    db.commit()
    logger.info("AUTH: cleaned up %s expired tokens", deleted)
    return {"success": True, "deleted": deleted, "message": f"Cleaned up {deleted} expired tokens"}
