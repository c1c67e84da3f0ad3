# fightcard_api/app/db.py
from urllib.parse import urlparse

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .settings import settings

# Prefer a full DATABASE_URL (Render injects this). Fallback to individual parts for local dev.
DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    logger.info(
        "DB CONFIG (local fallback) -> user={} host={} port={} db={}",
        settings.PGUSER, settings.PGHOST, settings.PGPORT, settings.PGDATABASE,
    )
    DATABASE_URL = (
        f"postgresql://{settings.PGUSER}:{settings.PGPASSWORD}"
        f"@{settings.PGHOST}:{settings.PGPORT}/{settings.PGDATABASE}"
    )

connect_args = {}
parsed = urlparse(DATABASE_URL)

if parsed.scheme.startswith("sqlite"):
    # sessions are handed across threads by FastAPI's threadpool
    connect_args["check_same_thread"] = False
elif parsed.hostname not in {"localhost", "127.0.0.1", None}:
    # psycopg2 uses sslmode; remote Postgres requires it
    connect_args["sslmode"] = "require"

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
