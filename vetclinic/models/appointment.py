"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from vetclinic.database import Base

APPOINTMENT_STATUSES = ("pending", "confirmed", "completed", "cancelled", "no-show")
APPOINTMENT_TYPES = ("regular", "emergency", "surgery", "vaccination", "checkup", "consultation")
TERMINAL_STATUSES = ("completed", "cancelled")


class Appointment(Base):
    """Represents a booked appointment."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    pet_id = Column(Integer, ForeignKey("pets.id"), nullable=False, index=True)
    start_datetime = Column(DateTime, nullable=False)
    end_datetime = Column(DateTime, nullable=False)
    appointment_type = Column(String, nullable=False, default="regular")
    duration = Column(Integer, nullable=False, default=20)  # minutes
    notes = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    doctor = relationship("Doctor", lazy="joined")
    pet = relationship("Pet", lazy="joined")
    user = relationship("User", lazy="joined")

    __table_args__ = (
        Index("idx_appointments_doctor_start", "doctor_id", "start_datetime"),
    )
