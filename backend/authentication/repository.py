import math
from types import SimpleNamespace

from sqlalchemy import func, or_, text
from sqlalchemy.orm import Session

from authentication.models import AuthToken, User
from authentication.security import utcnow


def find_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email).first()


def find_user_by_id(db: Session, user_id: int) -> User | None:
    return db.query(User).filter(User.user_id == user_id).first()


def create_user(
    db: Session,
    email: str,
    google_id: str | None,
    name: str | None,
    profile_picture: str | None,
    role: str = "user",
    status: str = "active",
) -> User:
    user = User(
        email=email,
        google_id=google_id,
        name=name,
        profile_picture=profile_picture,
        role=role or "user",
        status=status or "active",
        last_login=utcnow(),
    )
    db.add(user)
    db.flush()
    return user


def update_user_login(
    db: Session,
    user: User,
    google_id: str | None,
    name: str | None,
    profile_picture: str | None,
) -> User:
    user.google_id = google_id
    user.name = name
    user.profile_picture = profile_picture
    user.last_login = utcnow()
    user.updated_at = utcnow()
    db.flush()
    return user


def create_auth_token(db: Session, user_id: int, token: str, expires_at) -> AuthToken:
    record = AuthToken(user_id=user_id, token=token, expires_at=expires_at)
    db.add(record)
    db.flush()
    return record


def verify_token(db: Session, token: str) -> User | None:
    """
    Resolve a bearer token to its active user, or None when the token is
    unknown, expired or belongs to an inactive account.
    """
    return (
        db.query(User)
        .join(AuthToken, AuthToken.user_id == User.user_id)
        .filter(AuthToken.token == token)
        .filter(AuthToken.expires_at > utcnow())
        .filter(User.status == "active")
        .first()
    )


def delete_token(db: Session, token: str) -> bool:
    deleted = db.query(AuthToken).filter(AuthToken.token == token).delete(synchronize_session=False)
    return bool(deleted)


def cleanup_expired_tokens(db: Session) -> int:
    deleted = (
        db.query(AuthToken)
        .filter(AuthToken.expires_at < utcnow())
        .delete(synchronize_session=False)
    )
    return int(deleted or 0)


def list_users(
    db: Session,
    page: int = 1,
    limit: int = 50,
    search: str | None = None,
    role: str | None = None,
) -> dict:
    page = max(1, page)
    limit = max(1, min(limit, 500))

    query = db.query(User)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(User.email.ilike(pattern), User.name.ilike(pattern)))
    if role:
        query = query.filter(User.role == role)

    total = query.with_entities(func.count(User.user_id)).scalar() or 0
    users = (
        query.order_by(User.created_at.desc(), User.user_id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "users": users,
        "total": int(total),
        "page": page,
        "totalPages": math.ceil(total / limit) if total else 0,
    }


def update_user(
    db: Session,
    user: User,
    role: str | None = None,
    status: str | None = None,
) -> User:
    if role:
        user.role = role
    if status:
        user.status = status
    user.updated_at = utcnow()
    db.flush()
    return user


def delete_user(db: Session, user: User) -> None:
    db.query(AuthToken).filter(AuthToken.user_id == user.user_id).delete(synchronize_session=False)
    db.delete(user)
    db.flush()


def user_stats(db: Session) -> list[SimpleNamespace]:
    rows = (
        db.execute(
            text(
                """
                SELECT
                    role,
                    COUNT(*) AS total_users,
                    COUNT(CASE WHEN status = 'active' THEN 1 END) AS active_users
                FROM users
                GROUP BY role
                ORDER BY role
                """
            )
        )
        .mappings()
        .all()
    )
    return [SimpleNamespace(**row) for row in rows]
