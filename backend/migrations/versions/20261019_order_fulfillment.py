"""Order fulfilment queue: status, client and schedule fields

Revision ID: 20261019_fulfillment
Revises: 20261018_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_fulfillment"
down_revision = "20261018_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.add_column(sa.Column("fulfillment_status", sa.String(16), nullable=True))
        batch_op.add_column(sa.Column("client_name", sa.String(128), nullable=True))
        batch_op.add_column(sa.Column("client_phone", sa.String(32), nullable=True))
        batch_op.add_column(sa.Column("dedication", sa.String(255), nullable=True))
        batch_op.add_column(sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True))
        batch_op.create_index("ix_orders_fulfillment_status", ["fulfillment_status"], unique=False)

    # Orders committed before this revision enter the queue as delivered
    op.execute("UPDATE orders SET fulfillment_status = 'delivered' WHERE status = 'COMMITTED'")


def downgrade():
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.drop_index("ix_orders_fulfillment_status")
        batch_op.drop_column("delivered_at")
        batch_op.drop_column("scheduled_for")
        batch_op.drop_column("dedication")
        batch_op.drop_column("client_phone")
        batch_op.drop_column("client_name")
        batch_op.drop_column("fulfillment_status")
