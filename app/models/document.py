"""
Stored document model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON

from app.core.db import Base

class StoredDocument(Base):
    __tablename__ = "documents"

    # Full path, e.g. groups/{groupId}/events/{eventId}
    path = Column(String(512), primary_key=True)
    collection = Column(String(512), nullable=False, index=True)
    doc_id = Column(String(128), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
