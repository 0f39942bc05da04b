from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
import uuid

from schoolsync.core.database import Base


class School(Base):
    """A tenant. Every synchronized row carries the owning school's id."""
    __tablename__ = "schools"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
