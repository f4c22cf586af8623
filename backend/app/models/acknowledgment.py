from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint
from app.db.base import Base

class Acknowledgment(Base):
    __tablename__ = "metrics_acknowledgments"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    metrics_computed_at = Column(DateTime, nullable=False)
    formula_version = Column(Integer, nullable=False)
    acknowledged_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "metrics_computed_at", "formula_version",
            name="uq_metrics_ack_user_computed_version",
        ),
    )
