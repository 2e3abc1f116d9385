from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

SLOT_PREDICATE = sa.text("is_rush = false AND status = 'confirmed'")


def upgrade():
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("service_type", sa.String(), nullable=False),
        sa.Column("date", sa.String(), nullable=False),
        sa.Column("time", sa.String(), nullable=False),
        sa.Column("is_rush", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("customer_handle", sa.String(), nullable=False),
        sa.Column("customer_email", sa.String(), nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
    )
    op.create_index("ix_bookings_date", "bookings", ["date"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    # one confirmed fixed-time booking per (date, time); rush and cancelled rows are exempt
    op.create_index(
        "uq_bookings_confirmed_slot",
        "bookings",
        ["date", "time"],
        unique=True,
        postgresql_where=SLOT_PREDICATE,
        sqlite_where=SLOT_PREDICATE,
    )


def downgrade():
    op.drop_index("uq_bookings_confirmed_slot", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_date", table_name="bookings")
    op.drop_table("bookings")
