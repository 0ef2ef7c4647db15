"""Doctor model definitions."""

from sqlalchemy import JSON, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from vetclinic.database import Base


class Doctor(Base):
    """A veterinarian who can be booked.

    ``working_hours`` holds the legacy single daily range ("09:00-19:00").
    ``weekly_schedule`` maps weekday names to lists of such ranges and wins
    over ``working_hours`` when present.
    """
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    specialization = Column(String)
    working_hours = Column(String, nullable=True)
    weekly_schedule = Column(JSON(none_as_null=True), nullable=True)

    user = relationship("User", lazy="joined")
    restricted_zones = relationship(
        "RestrictedZone",
        back_populates="doctor",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def name(self) -> str:
        return self.user.name if self.user is not None else ""
