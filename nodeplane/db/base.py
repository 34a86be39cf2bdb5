from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# Use JSONB on PostgreSQL, plain JSON on SQLite (for tests)
JSONVariant = sa.JSON().with_variant(JSONB, "postgresql")


class Base(DeclarativeBase):
    pass
