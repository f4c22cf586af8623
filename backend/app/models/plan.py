from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from app.db.base import Base

class Plan(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(128), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(16), nullable=False, default="active")

    # targets the plan was generated with
    calorie_target = Column(Integer, nullable=False)
    protein_target = Column(Integer, nullable=False)
    water_target = Column(Integer, nullable=False)
    bmr = Column(Integer, nullable=False)
    tdee = Column(Integer, nullable=False)
    weekly_rate = Column(Float, nullable=False, default=0.0)
    estimated_weeks = Column(Integer, nullable=True)
    projected_date = Column(Date, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_plans_user_start", "user_id", "start_date"),
    )
