"""Engine, session factory and declarative base for the structure tables."""
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, declarative_base

from curriculum_admin.config import settings


def engine_options(database_url: str) -> dict:
    """Connection options for ``database_url``.

    SQLite connections are shared with the threads FastAPI runs sync work
    on, so the same-thread check is turned off there.
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 300}


engine = create_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

# Each store write commits on its own; expire_on_commit stays on so reads see fresh rows.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a session for one request and close it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
