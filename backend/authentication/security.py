import os
import secrets
from datetime import datetime, timedelta, timezone

TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "24"))
TOKEN_CLEANUP_INTERVAL_SECONDS = int(os.getenv("TOKEN_CLEANUP_INTERVAL_SECONDS", "3600"))
SUPER_ADMIN_EMAILS = {
    email.strip().lower()
    for email in os.getenv("SUPER_ADMIN_EMAILS", "").split(",")
    if email.strip()
}

ROLES = ("user", "admin", "super_admin")
ADMIN_ROLES = ("admin", "super_admin")
STATUSES = ("active", "inactive")


def utcnow() -> datetime:
    # stored timestamps are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_token() -> str:
    return secrets.token_hex(32)


def token_expiry(expires_delta: timedelta | None = None) -> datetime:
    return utcnow() + (
        expires_delta
        if expires_delta is not None
        else timedelta(hours=TOKEN_TTL_HOURS)
    )


def initial_role_for(email: str) -> str:
    if (email or "").strip().lower() in SUPER_ADMIN_EMAILS:
        return "super_admin"
    return "user"
