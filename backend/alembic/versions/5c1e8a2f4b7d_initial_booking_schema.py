"""initial_booking_schema

Revision ID: 5c1e8a2f4b7d
Revises:
Create Date: 2026-10-16 09:00:00.000000

Creates the five booking tables, including the partial unique index that
allows one active holder per slot and the queue_position check constraint.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1e8a2f4b7d'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_HOLDER_PREDICATE = sa.text("status IN ('pending', 'confirmed')")


def upgrade() -> None:
    # 1. properties
    op.create_table(
        'properties',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('assigned_agent_id', sa.Integer(), nullable=True),
        sa.Column('is_archived', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_properties_id'), 'properties', ['id'], unique=False)

    # 2. appointments
    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('agent_id', sa.Integer(), nullable=True),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('appointment_time', sa.Time(), nullable=False),
        sa.Column('booking_timestamp', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('queue_position', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'queued', 'completed', 'cancelled')",
            name='ck_appointments_status'
        ),
        sa.CheckConstraint(
            "(status = 'queued' AND queue_position IS NOT NULL AND queue_position > 0) "
            "OR (status != 'queued' AND queue_position IS NULL)",
            name='ck_appointments_queue_position'
        ),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_appointments_id'), 'appointments', ['id'], unique=False)
    op.create_index(
        'uq_appointments_active_slot',
        'appointments',
        ['property_id', 'appointment_date', 'appointment_time'],
        unique=True,
        postgresql_where=ACTIVE_HOLDER_PREDICATE,
        sqlite_where=ACTIVE_HOLDER_PREDICATE
    )
    op.create_index(
        'idx_appointments_slot',
        'appointments',
        ['property_id', 'appointment_date', 'appointment_time', 'status'],
        unique=False
    )
    op.create_index(
        'idx_appointments_customer_property',
        'appointments',
        ['customer_id', 'property_id', 'status'],
        unique=False
    )
    op.create_index('idx_appointments_agent', 'appointments', ['agent_id'], unique=False)
    op.create_index('idx_appointments_booking_timestamp', 'appointments', ['booking_timestamp'], unique=False)

    # 3. blocked_slots
    op.create_table(
        'blocked_slots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('blocked_date', sa.Date(), nullable=False),
        sa.Column('blocked_time', sa.Time(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('blocked_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('property_id', 'blocked_date', 'blocked_time', name='uq_blocked_slots_slot')
    )
    op.create_index(op.f('ix_blocked_slots_id'), 'blocked_slots', ['id'], unique=False)
    op.create_index('idx_blocked_slots_property_date', 'blocked_slots', ['property_id', 'blocked_date'], unique=False)

    # 4. notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_id'), 'notifications', ['id'], unique=False)
    op.create_index('idx_notifications_user', 'notifications', ['user_id', 'is_read'], unique=False)

    # 5. booking_locks
    op.create_table(
        'booking_locks',
        sa.Column('lock_key', sa.String(length=120), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('lock_key')
    )


def downgrade() -> None:
    op.drop_table('booking_locks')

    op.drop_index('idx_notifications_user', table_name='notifications')
    op.drop_index(op.f('ix_notifications_id'), table_name='notifications')
    op.drop_table('notifications')

    op.drop_index('idx_blocked_slots_property_date', table_name='blocked_slots')
    op.drop_index(op.f('ix_blocked_slots_id'), table_name='blocked_slots')
    op.drop_table('blocked_slots')

    op.drop_index('idx_appointments_booking_timestamp', table_name='appointments')
    op.drop_index('idx_appointments_agent', table_name='appointments')
    op.drop_index('idx_appointments_customer_property', table_name='appointments')
    op.drop_index('idx_appointments_slot', table_name='appointments')
    op.drop_index('uq_appointments_active_slot', table_name='appointments')
    op.drop_index(op.f('ix_appointments_id'), table_name='appointments')
    op.drop_table('appointments')

    op.drop_index(op.f('ix_properties_id'), table_name='properties')
    op.drop_table('properties')
