"""Database connection setup for the account service using SQLAlchemy."""

import os
import logging
from sqlalchemy import create_engine, exc
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from fastapi import HTTPException
from dotenv import load_dotenv

# Logger configuration
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Load environment variables from .env
load_dotenv()

# Database credentials, used when DATABASE_URL is not given explicitly
DB_USER = os.getenv("DB_USER")
DB_PASS = os.getenv("DB_PASS")
DB_HOST = os.getenv("DB_HOST")
DB_NAME = os.getenv("DB_NAME")


def build_database_url() -> str:
    """Resolves the SQLAlchemy URL: DATABASE_URL, then DB_* credentials, then a local SQLite file."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    required_db_vars = {"DB_USER", "DB_PASS", "DB_HOST", "DB_NAME"}
    missing_vars = required_db_vars - set(os.environ)
    if not missing_vars:
        return f"mysql+pymysql://{DB_USER}:{DB_PASS}@{DB_HOST}/{DB_NAME}"

    logger.warning(
        f"Missing database environment variables ({', '.join(sorted(missing_vars))}); "
        "falling back to local SQLite database."
    )
    return "sqlite:///./accounts.db"


SQLALCHEMY_DATABASE_URL = build_database_url()


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        # pool_pre_ping helps with stale connections in the pool
        return {"pool_pre_ping": True}
    options = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # a single shared connection keeps the in-memory database alive
        options["poolclass"] = StaticPool
    return options


# The engine is the entry point to the database.
try:
    engine = create_engine(SQLALCHEMY_DATABASE_URL, **_engine_options(SQLALCHEMY_DATABASE_URL))
    with engine.connect() as connection:
        logger.info("Database connection established.")
except exc.SQLAlchemyError as e:
    logger.error(f"Could not connect to the database: {e}", exc_info=True)
    engine = None

# Each request gets its own session from this factory.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine) if engine else None

# Declarative base for the ORM models.
Base = declarative_base()


# --- FastAPI dependency ---
def get_db():
    """
    FastAPI dependency yielding a database session.
    Rolls back on failure and always closes the session when the request ends.
    """
    if SessionLocal is None:
        logger.error("Database session factory is not initialized.")
        raise HTTPException(status_code=503, detail="Database service unavailable.")

    db = SessionLocal()
    try:
        yield db
    except exc.SQLAlchemyError as e:
        logger.error(f"Database error during request: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal database error.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
