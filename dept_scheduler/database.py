# dept_scheduler/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from dept_scheduler.config.settings import Settings

DATABASE_URL = Settings.DATABASE["url"]


def build_engine(database_url: str):
    """Create an engine for the given URL.

    PostgreSQL deployments (Render and similar) keep sslmode on; SQLite is
    used for local development and tests.
    """
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        connect_args={"sslmode": Settings.DATABASE["sslmode"]},
        pool_pre_ping=True,
    )


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


# Imported wherever a request-scoped DB session is needed
def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables for the registered models."""
    import dept_scheduler.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
