from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from perfreview.database import Base


class StoredDocument(Base):
    """One JSON document of a named collection (reviewCycles, reviews, users)."""
    __tablename__ = "documents"

    collection = Column(String, primary_key=True, index=True)
    doc_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<StoredDocument {self.collection}/{self.doc_id}>"
