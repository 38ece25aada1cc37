from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from config import DATABASE_URL

engine = create_engine(DATABASE_URL, echo=False)
SessionLocal = sessionmaker(bind=engine)

Base = declarative_base()


def utcnow() -> datetime:
    # naive UTC, the form SQLite DateTime columns hand back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def init_db(bind=None):
    # models must be imported so their tables are registered on Base
    from models import car, user, verification  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
