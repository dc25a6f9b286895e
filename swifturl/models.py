"""SQLAlchemy ORM models for SwiftURL.

This module defines the database schema using SQLAlchemy declarative models
with the indexes the redirect path and the expiration sweeper rely on.

Data Model Layout
=================
::
    urls table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ long_url (TEXT NOT NULL)
    ├─ short_code (VARCHAR(10) UNIQUE NOT NULL, INDEXED)
    ├─ clicks (INTEGER DEFAULT 0)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW(), INDEXED)
    └─ expires_at (TIMESTAMPTZ NULL, INDEXED)

How to Use
===========
**Step 1 — Import**::
    from swifturl.models import URL

**Step 2 — Query URLs**::
    result = await db.execute(select(URL).where(URL.short_code == "abc123"))
    url = result.scalar_one_or_none()

Key Behaviours
===============
- short_code uniqueness is enforced here; creation relies on this constraint
  to settle races between concurrent requests for the same custom code.
- expires_at is indexed for the sweeper's range delete.
- clicks only grows from the store's point of view; increments are atomic
  ``UPDATE ... SET clicks = clicks + n`` statements.
- A NULL expires_at means the URL never expires.

Classes:
    URL:  A shortened URL mapping with click tracking and optional expiry.
"""

import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from swifturl.database import Base

__all__ = ["URL", "SHORT_CODE_MAX_LENGTH"]

SHORT_CODE_MAX_LENGTH = 10


class URL(Base):
    __tablename__ = "urls"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    long_url: Mapped[str] = mapped_column(Text, nullable=False)
    short_code: Mapped[str] = mapped_column(
        String(SHORT_CODE_MAX_LENGTH), unique=True, index=True, nullable=False
    )
    clicks: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True, nullable=False
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), index=True, nullable=True
    )

    def __repr__(self) -> str:
        return f"<URL(id={self.id}, short_code='{self.short_code}', clicks={self.clicks})>"
