"""Database models for table-backed collections."""

from sqlalchemy import BigInteger, DateTime, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import mapped_column
from sqlalchemy.sql import func

from .db import Base


class ApprovedEntryRow(Base):
    """One approved entry of a collection; the full record lives in ``payload``."""
    __tablename__ = "approved_entries"

    id = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    collection = mapped_column(String(32), nullable=False, index=True)  # 'observations' | 'objects'
    fingerprint = mapped_column(String(64), nullable=False)
    published_at = mapped_column(DateTime(timezone=True), index=True)
    week = mapped_column(String(10), nullable=True)
    payload = mapped_column(JSON, nullable=False)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("collection", "fingerprint", name="uq_collection_fingerprint"),)


Index("idx_approved_entries_collection_published", ApprovedEntryRow.collection, ApprovedEntryRow.published_at.desc())
