from sqlalchemy import Column, Text
from sqlalchemy.orm import relationship
from fieldgates.database import Base


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Text, primary_key=True)
    title = Column(Text, nullable=False)
    address = Column(Text)
    status = Column(Text, nullable=False, default="lead")
    lead_tech_id = Column(Text)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    gates = relationship("Gate", back_populates="job", cascade="all, delete-orphan")
    photos = relationship("Photo", back_populates="job", cascade="all, delete-orphan")
