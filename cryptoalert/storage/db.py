import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

DB_URL = os.getenv("DB_URL", "sqlite:///./data/alerts.db")
if DB_URL.startswith("sqlite:///./"):
    os.makedirs(os.path.dirname(DB_URL[len("sqlite:///"):]), exist_ok=True)

engine = create_engine(DB_URL, echo=False, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db():
    """Create all tables (no-op for tables that already exist)."""
    from cryptoalert.storage.models import Base
    Base.metadata.create_all(engine)
