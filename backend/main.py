import asyncio
import logging
import os

from fastapi import FastAPI, Depends, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from db.session import engine
from db.base import Base
from authentication import models as auth_models  # noqa: F401
from authentication.deps import get_current_user
from authentication.router import router as auth_router
from authentication.security import TOKEN_CLEANUP_INTERVAL_SECONDS
from routers.schools import router as schools_router
from routers.udise import router as udise_router
from routers.users import router as users_router
from services.token_cleanup import token_cleanup_loop

# --------------------------------------------------
# LOGGING
# --------------------------------------------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:5174").split(",")
    if origin.strip()
]


# --------------------------------------------------
# APP
# --------------------------------------------------
app = FastAPI(
    title="UDISE School Data API",
    version="1.0.0",
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
    },
)

# --------------------------------------------------
# DB INIT
# --------------------------------------------------
@app.on_event("startup")
def _init_db():
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("DB init failed")


# --------------------------------------------------
# TOKEN CLEANUP
# --------------------------------------------------
@app.on_event("startup")
async def _start_token_cleanup():
    app.state.token_cleanup_task = None
    if TOKEN_CLEANUP_INTERVAL_SECONDS > 0:
        app.state.token_cleanup_task = asyncio.create_task(
            token_cleanup_loop(TOKEN_CLEANUP_INTERVAL_SECONDS)
        )


@app.on_event("shutdown")
async def _stop_token_cleanup():
    task = getattr(app.state, "token_cleanup_task", None)
    if task is not None:
        task.cancel()


# --------------------------------------------------
# CORS
# --------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------------------------------------------------
# CORS PREFLIGHT (EXPLICIT)
# --------------------------------------------------
@app.options("/{path:path}")
def preflight(path: str, request: Request):
    return Response(status_code=204)


# --------------------------------------------------
# ROUTERS
# --------------------------------------------------
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(udise_router, dependencies=[Depends(get_current_user)])
app.include_router(schools_router, dependencies=[Depends(get_current_user)])

# --------------------------------------------------
# HEALTH CHECK
# --------------------------------------------------
@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/")
def root():
    return {"status": "ok"}
