"""Clinic accounts: pet owners, doctors and administrators."""

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship, validates
from vetclinic.database import Base

USER_ROLES = ("owner", "doctor", "admin")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, default="")
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String)
    role = Column(String, nullable=False, default="owner")

    pets = relationship("Pet", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @validates("role")
    def validate_role(self, _key, value):
        if value not in USER_ROLES:
            raise ValueError(f"Unknown role {value!r}")
        return value
