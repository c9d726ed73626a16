"""Position reports and passages."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "positionreports",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lon", sa.Float(), nullable=False),
        sa.Column("sog", sa.Float(), nullable=True),
        sa.Column("cog", sa.Integer(), nullable=True),
        sa.Column("tws", sa.Float(), nullable=True),
        sa.Column("twa", sa.Integer(), nullable=True),
        sa.Column("twd", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_positionreports_time", "positionreports", ["time"], unique=False)

    op.create_table(
        "passages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_passages_start", "passages", ["start"], unique=True)
    op.create_index("ix_passages_status", "passages", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_passages_status", table_name="passages")
    op.drop_index("ix_passages_start", table_name="passages")
    op.drop_table("passages")

    op.drop_index("ix_positionreports_time", table_name="positionreports")
    op.drop_table("positionreports")
