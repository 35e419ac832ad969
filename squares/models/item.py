"""Item model - one row per document in the multi-entity table."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from squares.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Item(Base):
    """Document keyed by (pk, sk). Users, games, squares and square requests share this table.

    Secondary index columns are denormalised copies of document attributes so listings
    can be served without scanning `data`.
    """

    __tablename__ = "items"

    pk: Mapped[str] = mapped_column(String(128), primary_key=True)
    sk: Mapped[str] = mapped_column(String(128), primary_key=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    gsi1pk: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    gsi1sk: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    gsi2pk: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    gsi2sk: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(254), nullable=True, index=True)
    username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # bumped on every write
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_items_gsi1", "gsi1pk", "gsi1sk"),
        Index("ix_items_gsi2", "gsi2pk", "gsi2sk"),
    )


# Index name -> (partition column, sort column)
INDEXES: dict[str, tuple[str, Optional[str]]] = {
    "GSI1": ("gsi1pk", "gsi1sk"),
    "GSI2": ("gsi2pk", "gsi2sk"),
    "EmailIndex": ("email", None),
    "UsernameIndex": ("username", None),
    "DisplayNameIndex": ("display_name", None),
    "IdIndex": ("entity_id", None),
}

# Columns that may be set alongside the document
KEY_ATTRIBUTES = (
    "entity_id",
    "gsi1pk",
    "gsi1sk",
    "gsi2pk",
    "gsi2sk",
    "email",
    "username",
    "display_name",
)
