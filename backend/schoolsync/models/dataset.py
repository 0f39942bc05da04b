"""
Version store for the optimistic-concurrency sync protocol.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from schoolsync.core.database import Base


class Dataset(Base):
    """
    One row per (school, dataset key).

    ``version`` starts at 1 for a provisioned school and grows by exactly one
    per accepted push. ``data`` is the last pushed document, stored verbatim.
    """

    __tablename__ = "datasets"

    id = Column(Integer, primary_key=True, index=True)
    school_id = Column(String(36), nullable=False, index=True)
    key = Column(String(100), nullable=False, default="default")

    version = Column(Integer, nullable=False, default=0)
    data = Column(JSON, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("school_id", "key", name="uq_datasets_school_key"),
    )
