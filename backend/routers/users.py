from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from db.deps import get_db
from authentication.deps import require_admin, require_super_admin
from authentication.schemas import ProfileResponse, UpdateUserRequest
from authentication.repository import (
    delete_user as delete_user_record,
    find_user_by_id,
    list_users as list_user_records,
    update_user as update_user_record,
    user_stats,
)

router = APIRouter(prefix="/api/users", tags=["users"])


def _serialize(user) -> dict:
    return ProfileResponse.model_validate(user).model_dump(mode="json")


@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    search: str | None = Query(None),
    role: str | None = Query(None),
    db: Session = Depends(get_db),
    _: Any = Depends(require_admin),
):
    result = list_user_records(db, page=page, limit=limit, search=search, role=role)
    return {
        "success": True,
        "users": [_serialize(u) for u in result["users"]],
        "total": result["total"],
        "page": result["page"],
        "totalPages": result["totalPages"],
    }


@router.get("/stats")
def get_user_stats(
    db: Session = Depends(get_db),
    _: Any = Depends(require_admin),
):
    stats = user_stats(db)
    return {
        "success": True,
        "stats": [
            {
                "role": row.role,
                "total_users": int(row.total_users or 0),
                "active_users": int(row.active_users or 0),
            }
            for row in stats
        ],
    }


@router.put("/{user_id}")
def update_user(
    user_id: int,
    payload: UpdateUserRequest,
    db: Session = Depends(get_db),
    current_user: Any = Depends(require_admin),
):
    if user_id == current_user.user_id and payload.role and payload.role != current_user.role:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot modify your own role")

    if payload.role == "super_admin" and current_user.role != "super_admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super Admin access required")

    user = find_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if user.role == "super_admin" and current_user.role != "super_admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super Admin access required")

    update_user_record(db, user, role=payload.role, status=payload.status)
    db.commit()
    return {"success": True, "message": "User updated successfully", "user": _serialize(user)}


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: Any = Depends(require_super_admin),
):
    if user_id == current_user.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete your own account")

    user = find_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    delete_user_record(db, user)
    db.commit()
    return {"success": True, "message": "User deleted successfully"}
