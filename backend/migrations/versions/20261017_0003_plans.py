from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261017_0003"
down_revision = "20261017_0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "plans",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("calorie_target", sa.Integer(), nullable=False),
        sa.Column("protein_target", sa.Integer(), nullable=False),
        sa.Column("water_target", sa.Integer(), nullable=False),
        sa.Column("bmr", sa.Integer(), nullable=False),
        sa.Column("tdee", sa.Integer(), nullable=False),
        sa.Column("weekly_rate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("estimated_weeks", sa.Integer(), nullable=True),
        sa.Column("projected_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_plans_user_start", "plans", ["user_id", "start_date"])


def downgrade() -> None:
    op.drop_index("ix_plans_user_start", table_name="plans")
    op.drop_table("plans")
