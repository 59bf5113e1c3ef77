import argparse

from db.session import SessionLocal
from db.base import Base
from db.session import engine
from authentication.models import User
from authentication.repository import create_user, find_user_by_email, update_user
from authentication.security import ROLES


def main():
    parser = argparse.ArgumentParser(
        description="Create a user or change the role of an existing one (use to bootstrap admins)."
    )
    parser.add_argument("--email", required=True)
    parser.add_argument("--role", required=True, choices=list(ROLES))
    parser.add_argument("--name", default=None)
    args = parser.parse_args()

    email = args.email.strip().lower()
    if "@" not in email:
        raise SystemExit("Email must be a valid address")

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user: User | None = find_user_by_email(db, email)
        if user is None:
            user = create_user(
                db,
                email=email,
                google_id=None,
                name=args.name,
                profile_picture=None,
                role=args.role,
            )
            action = "Created"
        else:
            update_user(db, user, role=args.role, status="active")
            action = "Updated"
        db.commit()
        print(f"{action} user: {email} ({args.role})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
