# yaqeenpay/core/database.py

import logging
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from yaqeenpay.core.config import settings

logger = logging.getLogger(__name__)

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_recycle=300,
    connect_args=connect_args
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic_operation(db: Session):
    """Commit everything done inside the block, or nothing at all"""
    try:
        yield
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Atomic operation failed: {e}")
        raise


def init_db():
    """Create tables on startup"""
    # Models must be imported so they register on Base.metadata
    import yaqeenpay.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


def close_db():
    """Dispose connection pool on shutdown"""
    engine.dispose()
