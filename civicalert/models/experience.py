"""
Reported issue ("experience") model
Owned by the reporting service; this service only reads it
"""

from sqlalchemy import Column, String, Text, Float, DateTime, Uuid, func
import uuid

from .base import Base, utcnow

class Experience(Base):
    """Civic issue report with coordinates"""

    __tablename__ = "experiences"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reported_by = Column(String(255), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False, default="General")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
