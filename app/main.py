# File: app/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi import _rate_limit_exceeded_handler

from app.core.config import cors_headers_list, cors_origins_list
from app.core.logging import setup_logging
from app.core.ratelimit import limiter
from app.core.security import ensure_admin_account
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app import models  # noqa: F401  (registers tables on Base.metadata)
from app.routers import auth, issues, issues_stats, moderation

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if ensure_admin_account(db):
            logger.info("Admin account ready")
    finally:
        db.close()
    yield


app = FastAPI(title="Civic Issue Reporter API", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins_list(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=cors_headers_list(),
)

@app.get("/health")
def health():
    return {"ok": True}

app.include_router(moderation.router)
app.include_router(auth.router)
app.include_router(issues_stats.router)
app.include_router(issues.router)
