# backend/database.py
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from config import settings
from exceptions import UpstreamError

# 1. Store URL from the environment (or the local SQLite default)
SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

# 2. Managed Postgres hands out postgres:// URLs, SQLAlchemy wants postgresql://
if SQLALCHEMY_DATABASE_URL and SQLALCHEMY_DATABASE_URL.startswith("postgres://"):
    SQLALCHEMY_DATABASE_URL = SQLALCHEMY_DATABASE_URL.replace("postgres://", "postgresql://", 1)

# 3. Dialect specific connection options
if "sqlite" in SQLALCHEMY_DATABASE_URL:
    connect_args = {"check_same_thread": False} # SQLite only
else:
    connect_args = {}

engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args=connect_args
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    # Register every table on Base.metadata before creating them
    import models.users, models.product, models.variant, models.composite  # noqa: F401
    import models.image, models.stock, models.log  # noqa: F401
    Base.metadata.create_all(bind=engine)

@contextmanager
def transaction(db):
    """Commit the work done inside the block, or roll all of it back.

    Store failures surface as UpstreamError; business errors are re-raised
    untouched after the rollback.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError(f"Data store error: {e}") from e
    except Exception:
        db.rollback()
        raise
