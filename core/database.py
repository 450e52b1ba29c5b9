"""
Database connection and setup
Bookings, clients and photographers live in one relational store
"""
import json
import os
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from dotenv import load_dotenv

# Look for .env in project root: core/database.py -> core -> project root
env_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env')
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "")

if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is required for database connection")


def _json_default(value):
    # Milestone amounts are Decimals in memory and plain numbers on disk
    if isinstance(value, Decimal):
        return float(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _json_serializer(obj) -> str:
    return json.dumps(obj, default=_json_default)


_engine_kwargs = {
    "pool_pre_ping": True,  # Verify connections before using
    "json_serializer": _json_serializer,
    "echo": False,  # Set to True for SQL query logging in development
}
if DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    _engine_kwargs["pool_size"] = 10
    _engine_kwargs["max_overflow"] = 20

engine = create_engine(DATABASE_URL, **_engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Request-scoped session for `Depends(get_db)`; closed when the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create missing tables. Runs at startup; there are no migrations yet."""
    import models.booking  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=engine)
