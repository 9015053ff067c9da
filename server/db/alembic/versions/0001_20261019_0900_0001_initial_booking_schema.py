"""Initial booking schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps(with_updated: bool = True, aware: bool = False) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(timezone=aware), server_default=sa.text('now()'), nullable=False)]
    if with_updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False))
    return columns


def upgrade() -> None:
    """Upgrade database schema."""
    # Create experiences table
    op.create_table('experiences',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=64), nullable=True),
        sa.Column('base_price', sa.Integer(), nullable=False),
        sa.Column('duration_hours', sa.Numeric(precision=4, scale=1), nullable=False),
        sa.Column('max_passengers', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('base_price >= 0', name='ck_experience_base_price_non_negative'),
        sa.CheckConstraint('duration_hours > 0', name='ck_experience_duration_positive'),
        sa.CheckConstraint('max_passengers >= 1', name='ck_experience_max_passengers_positive'),
        sa.CheckConstraint('length(name) > 0', name='ck_experience_name_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_experiences_is_active'), 'experiences', ['is_active'], unique=False)

    # Create addons table
    op.create_table('addons',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='ck_addon_price_non_negative'),
        sa.CheckConstraint('length(name) > 0', name='ck_addon_name_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_addons_category'), 'addons', ['category'], unique=False)
    op.create_index(op.f('ix_addons_is_active'), 'addons', ['is_active'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.String(length=64), nullable=False),
        sa.Column('booking_type', sa.String(length=20), nullable=False),
        sa.Column('from_location', sa.String(length=64), nullable=True),
        sa.Column('to_location', sa.String(length=64), nullable=True),
        sa.Column('experience_id', sa.Uuid(), nullable=True),
        sa.Column('destination_id', sa.String(length=64), nullable=True),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('scheduled_time', sa.String(length=5), nullable=False),
        sa.Column('return_date', sa.Date(), nullable=True),
        sa.Column('return_time', sa.String(length=5), nullable=True),
        sa.Column('is_round_trip', sa.Boolean(), nullable=False),
        sa.Column('passenger_count', sa.Integer(), nullable=False),
        sa.Column('passenger_details', sa.JSON(), nullable=False),
        sa.Column('base_price', sa.Integer(), nullable=False),
        sa.Column('selected_addons', sa.JSON(), nullable=False),
        sa.Column('addon_total_price', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('refund_status', sa.String(length=20), nullable=False),
        sa.Column('refund_amount', sa.Integer(), nullable=False),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('refund_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pilot_id', sa.String(length=64), nullable=True),
        sa.Column('helicopter_id', sa.String(length=64), nullable=True),
        sa.Column('revision_requested', sa.Boolean(), nullable=False),
        sa.Column('revision_notes', sa.Text(), nullable=True),
        sa.Column('revision_data', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('passenger_count >= 1', name='ck_booking_passenger_count_positive'),
        sa.CheckConstraint('base_price >= 0', name='ck_booking_base_price_non_negative'),
        sa.CheckConstraint('addon_total_price >= 0', name='ck_booking_addon_total_non_negative'),
        sa.CheckConstraint('total_price = base_price + addon_total_price', name='ck_booking_total_consistency'),
        sa.CheckConstraint('refund_amount >= 0', name='ck_booking_refund_amount_non_negative'),
        sa.CheckConstraint('refund_amount <= total_price', name='ck_booking_refund_lte_total'),
        sa.CheckConstraint('length(client_id) > 0', name='ck_booking_client_id_not_empty'),
        sa.ForeignKeyConstraint(['experience_id'], ['experiences.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_client_id'), 'bookings', ['client_id'], unique=False)
    op.create_index(op.f('ix_bookings_booking_type'), 'bookings', ['booking_type'], unique=False)
    op.create_index(op.f('ix_bookings_scheduled_date'), 'bookings', ['scheduled_date'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_pilot_id'), 'bookings', ['pilot_id'], unique=False)

    # Create booking_status_changes table
    op.create_table('booking_status_changes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('from_status', sa.String(length=20), nullable=False),
        sa.Column('to_status', sa.String(length=20), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=False),
        sa.Column('actor_role', sa.String(length=20), nullable=False),
        *_timestamps(with_updated=False, aware=True),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_status_changes_booking_id'), 'booking_status_changes', ['booking_id'], unique=False)
    op.create_index(op.f('ix_booking_status_changes_created_at'), 'booking_status_changes', ['created_at'], unique=False)

    # Create transactions table
    op.create_table('transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('transaction_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=False),
        sa.Column('reference', sa.Text(), nullable=False),
        *_timestamps(with_updated=False, aware=True),
        sa.CheckConstraint('amount > 0', name='ck_transaction_amount_positive'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id')
    )
    op.create_index(op.f('ix_transactions_user_id'), 'transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_transactions_booking_id'), 'transactions', ['booking_id'], unique=False)
    op.create_index(op.f('ix_transactions_created_at'), 'transactions', ['created_at'], unique=False)

    # Create idempotency_records table
    op.create_table('idempotency_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('operation', sa.String(length=100), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('request_body_hash', sa.String(length=64), nullable=False),
        sa.Column('response_status_code', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(with_updated=False),
        sa.CheckConstraint('length(idempotency_key) > 0', name='ck_idempotency_key_not_empty'),
        sa.CheckConstraint('length(request_body_hash) = 64', name='ck_idempotency_hash_length'),
        sa.CheckConstraint('response_status_code >= 100', name='ck_idempotency_status_code_valid'),
        sa.CheckConstraint('response_status_code <= 599', name='ck_idempotency_status_code_max'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'operation', 'user_id', name='uq_idempotency_key_operation_user')
    )
    op.create_index(op.f('ix_idempotency_records_idempotency_key'), 'idempotency_records', ['idempotency_key'], unique=False)
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('idempotency_records')
    op.drop_table('transactions')
    op.drop_table('booking_status_changes')
    op.drop_table('bookings')
    op.drop_table('addons')
    op.drop_table('experiences')
