from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from scoreboard.core.config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # FastAPI may hand the same connection to a different worker thread
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


@contextmanager
def atomic(db: Session):
    """
    Runs the enclosed block as one transaction on the given session.
    Commits when the block finishes, rolls back and re-raises on any error.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def utcnow() -> datetime:
    # Naive UTC so values compare equal after a round trip through SQLite
    return datetime.now(timezone.utc).replace(tzinfo=None)
