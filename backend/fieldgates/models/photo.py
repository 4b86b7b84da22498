from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from fieldgates.database import Base


class Photo(Base):
    __tablename__ = "job_photos"

    id = Column(Text, primary_key=True)
    job_id = Column(Text, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    gate_id = Column(Text, ForeignKey("job_gates.id", ondelete="SET NULL"))
    storage_path = Column(Text, nullable=False, unique=True)
    photo_metadata = Column("metadata", JSON)
    is_ppe = Column(Boolean, nullable=False, default=False)
    taken_by = Column(Text)
    file_hash = Column(Text)
    file_size_bytes = Column(Integer)
    mime_type = Column(Text)
    created_at = Column(Text, nullable=False)

    job = relationship("Job", back_populates="photos")
