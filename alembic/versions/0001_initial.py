"""initial

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('trips',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('route', sa.String(length=255), nullable=False),
        sa.Column('fare', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_seats', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('departure_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('arrival_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('bus_type', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_trips_departure_time', 'trips', ['departure_time'], unique=False)
    op.create_index('ix_trips_is_active', 'trips', ['is_active'], unique=False)

    op.create_table('seats',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('trip_id', sa.String(length=64), nullable=False),
        sa.Column('seat_number', sa.String(length=32), nullable=False),
        sa.Column('row_number', sa.Integer(), nullable=False),
        sa.Column('column_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='available'),
        sa.Column('held_by', sa.String(length=128), nullable=True),
        sa.Column('hold_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('trip_id', 'seat_number', name='uq_trip_seat_number'),
    )
    op.create_index('ix_seats_trip_id', 'seats', ['trip_id'], unique=False)
    op.create_index('ix_seats_status', 'seats', ['status'], unique=False)
    op.create_index('ix_seats_status_expiry', 'seats', ['status', 'hold_expires_at'], unique=False)

    op.create_table('bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('reference', sa.String(length=32), nullable=False),
        sa.Column('trip_id', sa.String(length=64), nullable=False),
        sa.Column('holder_id', sa.String(length=128), nullable=False),
        sa.Column('seat_ids', sa.JSON(), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(length=50), nullable=True),
        sa.Column('payment_method', sa.String(length=50), nullable=True),
        sa.Column('payment_ref', sa.String(length=255), nullable=True),
        sa.Column('booked_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_bookings_reference', 'bookings', ['reference'], unique=True)
    op.create_index('ix_bookings_trip_id', 'bookings', ['trip_id'], unique=False)
    op.create_index('ix_bookings_holder_id', 'bookings', ['holder_id'], unique=False)
    op.create_index('ix_bookings_status', 'bookings', ['status'], unique=False)

    op.create_table('booking_seats',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('seat_id', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['seat_id'], ['seats.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('seat_id', name='uq_booking_seat'),
    )
    op.create_index('ix_booking_seats_booking_id', 'booking_seats', ['booking_id'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_id', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('object_type', sa.String(length=128), nullable=True),
        sa.Column('object_id', sa.String(length=128), nullable=True),
        sa.Column('detail', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'], unique=False)


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('booking_seats')
    op.drop_table('bookings')
    op.drop_table('seats')
    op.drop_table('trips')
