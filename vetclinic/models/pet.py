"""Pet model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from vetclinic.database import Base


class Pet(Base):
    """A pet registered by its owner."""
    __tablename__ = "pets"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    species = Column(String)
    breed = Column(String)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
