"""WMS initial schema: documents, counters, lots, reservations, approval tiers, event log

Revision ID: 20261019_wms_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_wms_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(16), nullable=False),
        sa.Column("document_number", sa.String(64), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="draft"),
        sa.Column("total_value_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("warehouse_id", sa.Integer(), nullable=True),
        sa.Column("to_warehouse_id", sa.Integer(), nullable=True),
        sa.Column("project_id", sa.Integer(), nullable=True),
        sa.Column("source_document_id", sa.Integer(), nullable=True),
        sa.Column("inspection_result", sa.String(16), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        sa.Column("last_action", sa.String(32), nullable=True),
        sa.Column("last_action_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by_id", sa.Integer(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["source_document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", "document_number", name="uq_documents_type_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("documents", schema=None) as batch_op:
        batch_op.create_index("ix_documents_warehouse_id", ["warehouse_id"], unique=False)
        batch_op.create_index("ix_documents_project_id", ["project_id"], unique=False)
        batch_op.create_index("ix_documents_created_by_id", ["created_by_id"], unique=False)
        batch_op.create_index("ix_documents_type_status", ["document_type", "status"], unique=False)
        batch_op.create_index("ix_documents_warehouse_status", ["warehouse_id", "status"], unique=False)
        batch_op.create_index("ix_documents_source", ["source_document_id"], unique=False)

    op.create_table(
        "document_counters",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(16), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", "year", name="uq_document_counters_type_year"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "inventory_lots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("lot_number", sa.String(64), nullable=False),
        sa.Column("source_document_id", sa.Integer(), nullable=True),
        sa.Column("initial_qty", sa.Integer(), nullable=False),
        sa.Column("available_qty", sa.Integer(), nullable=False),
        sa.Column("reserved_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("receipt_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("available_qty >= 0", name="ck_lots_available_nonneg"),
        sa.CheckConstraint("reserved_qty >= 0", name="ck_lots_reserved_nonneg"),
        sa.CheckConstraint("available_qty + reserved_qty <= initial_qty", name="ck_lots_within_initial"),
        sa.ForeignKeyConstraint(["source_document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lot_number", name="uq_inventory_lots_lot_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_lots", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_lots_source_document_id", ["source_document_id"], unique=False)
        batch_op.create_index(
            "ix_lots_item_wh_status_receipt", ["item_id", "warehouse_id", "status", "receipt_date"], unique=False
        )

    op.create_table(
        "stock_reservations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("consuming_document_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        *_timestamps(),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["consuming_document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_reservations", schema=None) as batch_op:
        batch_op.create_index("ix_reservations_document", ["consuming_document_id"], unique=False)
        batch_op.create_index("ix_reservations_item_wh_status", ["item_id", "warehouse_id", "status"], unique=False)

    op.create_table(
        "reservation_allocations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reservation_id", sa.Integer(), nullable=False),
        sa.Column("lot_id", sa.Integer(), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=True),
        sa.CheckConstraint("qty > 0", name="ck_allocations_qty_positive"),
        sa.ForeignKeyConstraint(["reservation_id"], ["stock_reservations.id"]),
        sa.ForeignKeyConstraint(["lot_id"], ["inventory_lots.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("reservation_allocations", schema=None) as batch_op:
        batch_op.create_index("ix_reservation_allocations_reservation_id", ["reservation_id"], unique=False)
        batch_op.create_index("ix_reservation_allocations_lot_id", ["lot_id"], unique=False)

    op.create_table(
        "document_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("line_status", sa.String(16), nullable=False, server_default="open"),
        sa.Column("condition", sa.String(16), nullable=True),
        sa.Column("reservation_id", sa.Integer(), nullable=True),
        sa.Column("lot_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="ck_document_lines_qty_positive"),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["reservation_id"], ["stock_reservations.id"]),
        sa.ForeignKeyConstraint(["lot_id"], ["inventory_lots.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("document_lines", schema=None) as batch_op:
        batch_op.create_index("ix_document_lines_document_id", ["document_id"], unique=False)
        batch_op.create_index("ix_document_lines_item_id", ["item_id"], unique=False)

    op.create_table(
        "approval_tiers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(16), nullable=False),
        sa.Column("min_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_amount_cents", sa.Integer(), nullable=True),
        sa.Column("required_role", sa.String(32), nullable=False),
        sa.Column("chain_level", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", "chain_level", name="uq_approval_tiers_type_level"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("approval_tiers", schema=None) as batch_op:
        batch_op.create_index("ix_approval_tiers_type_min", ["document_type", "min_amount_cents"], unique=False)

    op.create_table(
        "system_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("performed_by_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("system_events", schema=None) as batch_op:
        batch_op.create_index("ix_system_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_system_events_entity", ["entity_type", "entity_id"], unique=False)

    op.create_table(
        "event_delivery_failures",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("handler_name", sa.String(128), nullable=False),
        sa.Column("error", sa.Text(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", sa.String(16), nullable=False, server_default="open"),
        *_timestamps(),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["event_id"], ["system_events.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("event_delivery_failures", schema=None) as batch_op:
        batch_op.create_index("ix_event_delivery_failures_event_id", ["event_id"], unique=False)
        batch_op.create_index("ix_delivery_failures_status", ["status"], unique=False)


def downgrade():
    op.drop_table("event_delivery_failures")
    op.drop_table("system_events")
    op.drop_table("approval_tiers")
    op.drop_table("document_lines")
    op.drop_table("reservation_allocations")
    op.drop_table("stock_reservations")
    op.drop_table("inventory_lots")
    op.drop_table("document_counters")
    op.drop_table("documents")
