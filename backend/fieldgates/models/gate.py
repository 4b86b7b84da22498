from sqlalchemy import JSON, Boolean, Column, ForeignKey, Text
from sqlalchemy.orm import relationship
from fieldgates.database import Base


class Gate(Base):
    __tablename__ = "job_gates"

    id = Column(Text, primary_key=True)
    job_id = Column(Text, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    stage_name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    # "metadata" is reserved on declarative classes
    gate_metadata = Column("metadata", JSON)
    requires_exception = Column(Boolean, nullable=False, default=False)
    exception_reason = Column(Text)
    completed_at = Column(Text)
    completed_by = Column(Text)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    job = relationship("Job", back_populates="gates")
