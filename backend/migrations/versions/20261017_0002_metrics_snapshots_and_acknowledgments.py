from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261017_0002"
down_revision = "20261017_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "metrics_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("bmi", sa.Float(), nullable=False),
        sa.Column("bmr", sa.Integer(), nullable=False),
        sa.Column("tdee", sa.Integer(), nullable=False),
        sa.Column("computed_at", sa.DateTime(), nullable=False),
        sa.Column("computed_date", sa.Date(), nullable=False),
        sa.Column("formula_version", sa.Integer(), nullable=False),
        sa.Column("force_recomputed", sa.Boolean(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_metrics_snapshots_user_date", "metrics_snapshots", ["user_id", "computed_date"])
    op.create_index("ix_metrics_snapshots_user_computed_at", "metrics_snapshots", ["user_id", "computed_at"])
    op.create_index(
        "uq_metrics_snapshots_user_day",
        "metrics_snapshots",
        ["user_id", "computed_date"],
        unique=True,
        sqlite_where=sa.text("force_recomputed = 0"),
        postgresql_where=sa.text("NOT force_recomputed"),
    )

    op.create_table(
        "metrics_acknowledgments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("metrics_computed_at", sa.DateTime(), nullable=False),
        sa.Column("formula_version", sa.Integer(), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "user_id", "metrics_computed_at", "formula_version",
            name="uq_metrics_ack_user_computed_version",
        ),
    )
    op.create_index("ix_metrics_acknowledgments_user_id", "metrics_acknowledgments", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_metrics_acknowledgments_user_id", table_name="metrics_acknowledgments")
    op.drop_table("metrics_acknowledgments")
    op.drop_index("uq_metrics_snapshots_user_day", table_name="metrics_snapshots")
    op.drop_index("ix_metrics_snapshots_user_computed_at", table_name="metrics_snapshots")
    op.drop_index("ix_metrics_snapshots_user_date", table_name="metrics_snapshots")
    op.drop_table("metrics_snapshots")
