"""
SQLAlchemy 2.0 async DeclarativeBase for TCG Appraiser.

All models inherit from this Base.
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# JSONB on Postgres, plain JSON elsewhere (aiosqlite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all TCG Appraiser database models."""
    pass
