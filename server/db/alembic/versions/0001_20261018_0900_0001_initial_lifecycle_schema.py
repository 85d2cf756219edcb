"""Initial booking lifecycle schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

UNPAID_OPEN = "payment_status = 'pending' AND status <> 'cancelled'"


def upgrade() -> None:
    """Upgrade database schema."""
    # Read-only catalog tables
    op.create_table('destinations',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_url', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('events',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('payment_url', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('destination_id', sa.String(length=64), nullable=True),
        sa.Column('event_id', sa.String(length=64), nullable=True),
        sa.Column('number_of_people', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('booking_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('preferred_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('contact_name', sa.String(length=255), nullable=False),
        sa.Column('contact_email', sa.String(length=320), nullable=False),
        sa.Column('contact_phone', sa.String(length=64), nullable=False),
        sa.Column('booking_details', sa.JSON(), nullable=True),
        sa.Column('selected_ticket_type', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('payment_id', sa.String(length=36), nullable=True),
        sa.Column('payment_proof_url', sa.Text(), nullable=True),
        sa.Column('payment_proof_uploaded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmation_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('number_of_people >= 1', name='ck_booking_people_positive'),
        sa.CheckConstraint('total_price >= 0', name='ck_booking_total_price_non_negative'),
        sa.CheckConstraint('destination_id IS NULL OR event_id IS NULL', name='ck_booking_single_reference'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'], unique=False)
    op.create_index(op.f('ix_bookings_destination_id'), 'bookings', ['destination_id'], unique=False)
    op.create_index(op.f('ix_bookings_event_id'), 'bookings', ['event_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_payment_status'), 'bookings', ['payment_status'], unique=False)
    op.create_index(op.f('ix_bookings_payment_id'), 'bookings', ['payment_id'], unique=False)
    # Storage backing for the duplicate-booking guard
    op.create_index(
        'uq_bookings_unpaid_user_destination', 'bookings', ['user_id', 'destination_id'],
        unique=True, postgresql_where=sa.text(UNPAID_OPEN), sqlite_where=sa.text(UNPAID_OPEN)
    )
    op.create_index(
        'uq_bookings_unpaid_user_event', 'bookings', ['user_id', 'event_id'],
        unique=True, postgresql_where=sa.text(UNPAID_OPEN), sqlite_where=sa.text(UNPAID_OPEN)
    )

    # Create payments table
    op.create_table('payments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('booking_id', sa.String(length=36), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_method', sa.String(length=64), nullable=True),
        sa.Column('payment_gateway', sa.String(length=64), nullable=True),
        sa.Column('payment_gateway_reference', sa.String(length=2048), nullable=True),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('payment_details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_payment_amount_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_booking_id'), 'payments', ['booking_id'], unique=False)
    op.create_index(op.f('ix_payments_status'), 'payments', ['status'], unique=False)

    # Create itineraries table
    op.create_table('itineraries',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False),
        sa.Column('share_code', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('length(title) > 0', name='ck_itinerary_title_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_itineraries_user_id'), 'itineraries', ['user_id'], unique=False)
    op.create_index(op.f('ix_itineraries_share_code'), 'itineraries', ['share_code'], unique=True)

    # Create itinerary_destinations table
    op.create_table('itinerary_destinations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('itinerary_id', sa.String(length=36), nullable=False),
        sa.Column('destination_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('"order" >= 0', name='ck_itinerary_destination_order_non_negative'),
        sa.CheckConstraint('end_date >= start_date', name='ck_itinerary_destination_dates'),
        sa.ForeignKeyConstraint(['itinerary_id'], ['itineraries.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('itinerary_id', 'order', name='uq_itinerary_destination_order')
    )
    op.create_index(
        op.f('ix_itinerary_destinations_itinerary_id'), 'itinerary_destinations', ['itinerary_id'], unique=False
    )

    # Create idempotency_records table
    op.create_table('idempotency_records',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('operation', sa.String(length=100), nullable=False),
        sa.Column('request_hash', sa.String(length=64), nullable=False),
        sa.Column('resource_id', sa.String(length=36), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('length(idempotency_key) > 0', name='ck_idempotency_key_not_empty'),
        sa.CheckConstraint('length(request_hash) = 64', name='ck_idempotency_hash_length'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'operation', name='uq_idempotency_key_operation')
    )
    op.create_index(
        op.f('ix_idempotency_records_idempotency_key'), 'idempotency_records', ['idempotency_key'], unique=False
    )
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('idempotency_records')
    op.drop_table('itinerary_destinations')
    op.drop_table('itineraries')
    op.drop_table('payments')
    op.drop_index('uq_bookings_unpaid_user_event', table_name='bookings')
    op.drop_index('uq_bookings_unpaid_user_destination', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('events')
    op.drop_table('destinations')
