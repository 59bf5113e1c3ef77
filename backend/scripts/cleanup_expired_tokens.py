from db.base import Base
from db.session import engine
from authentication import models as auth_models  # noqa: F401
from services.token_cleanup import purge_expired_tokens


def main():
    Base.metadata.create_all(bind=engine)
    deleted = purge_expired_tokens()
    print(f"deleted={deleted}")


if __name__ == "__main__":
    main()
