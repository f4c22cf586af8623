from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, text
from app.db.base import Base

class MetricsSnapshot(Base):
    """
    Append-only daily BMI/BMR/TDEE record.

    Rows are never updated. At most one row per (user_id, computed_date)
    unless force_recomputed is set on the later rows.
    """

    __tablename__ = "metrics_snapshots"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    bmi = Column(Float, nullable=False)             # rounded to 2 decimals
    bmr = Column(Integer, nullable=False)
    tdee = Column(Integer, nullable=False)

    computed_at = Column(DateTime, nullable=False)      # naive UTC, whole seconds
    computed_date = Column(Date, nullable=False)        # UTC day bucket of computed_at
    formula_version = Column(Integer, nullable=False)
    force_recomputed = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_metrics_snapshots_user_date", "user_id", "computed_date"),
        Index("ix_metrics_snapshots_user_computed_at", "user_id", "computed_at"),
        Index(
            "uq_metrics_snapshots_user_day",
            "user_id",
            "computed_date",
            unique=True,
            sqlite_where=text("force_recomputed = 0"),
            postgresql_where=text("NOT force_recomputed"),
        ),
    )
