"""Restricted zone model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import relationship
from vetclinic.database import Base


class RestrictedZone(Base):
    """A doctor-declared interval during which nothing can be booked."""
    __tablename__ = "doctor_restricted_time_frames"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    start_datetime = Column(DateTime, nullable=False)
    end_datetime = Column(DateTime, nullable=False)
    reason = Column(Text, nullable=True)

    doctor = relationship("Doctor", back_populates="restricted_zones")

    __table_args__ = (
        Index("idx_restricted_zones_doctor_start", "doctor_id", "start_datetime"),
    )
