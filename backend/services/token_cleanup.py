import asyncio
import logging

from fastapi.concurrency import run_in_threadpool

from db.session import SessionLocal
from authentication.repository import cleanup_expired_tokens

logger = logging.getLogger(__name__)


def purge_expired_tokens(session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        deleted = cleanup_expired_tokens(db)
        db.commit()
        return deleted
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


async def token_cleanup_loop(interval_seconds: int, session_factory=SessionLocal) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            deleted = await run_in_threadpool(purge_expired_tokens, session_factory)
            logger.info("TOKENS: cleaned up %s expired tokens", deleted)
        except Exception:
            logger.exception("Token cleanup failed")
