from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from perfreview.core.config import settings

# Support both PostgreSQL and SQLite via centralized settings
DATABASE_URL = settings.database_url

if DATABASE_URL.startswith("postgresql"):
    engine = create_engine(DATABASE_URL)
else:
    # SQLite configuration for local development/testing
    engine = create_engine(
        DATABASE_URL, connect_args={"check_same_thread": False}
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None):
    """
    Registers the document model and creates the schema.
    """
    # Import models to ensure they are registered with Base.metadata before create_all
    from perfreview.models import document  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
