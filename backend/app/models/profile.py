from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import backref, relationship
from app.db.base import Base

class UserProfile(Base):
    """Health inputs written by the profile/onboarding flow; read-only here."""

    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    weight_kg = Column(Float, nullable=True)
    height_cm = Column(Float, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(16), nullable=True)           # male | female | other
    activity_level = Column(String(32), nullable=True)
    primary_goal = Column(String(32), nullable=True)
    target_weight_kg = Column(Float, nullable=True)

    onboarding_completed = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", backref=backref("profile", uselist=False))
