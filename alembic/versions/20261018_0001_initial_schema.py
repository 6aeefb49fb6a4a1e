"""initial scheduling schema

Revision ID: coachcal_0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'coachcal_0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BLOCKING = sa.text("status IN ('booked', 'rescheduled', 'no_show')")


def _pk() -> sa.Column:
    return sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), primary_key=True, autoincrement=True)


def upgrade() -> None:
    op.create_table(
        'availabilities',
        _pk(),
        sa.Column('owner_type', sa.String(16), nullable=False),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('coach_id', sa.String(64), nullable=False),
        sa.Column('time_zone', sa.String(64), nullable=False),
        sa.Column('default_duration', sa.Integer(), nullable=False),
        sa.Column('buffer_time', sa.Integer(), nullable=False),
        sa.Column('assignment_enabled', sa.Boolean(), nullable=False),
        sa.Column('assignment_mode', sa.String(16), nullable=False),
        sa.Column('consider_staff_availability', sa.Boolean(), nullable=False),
        sa.Column('allow_multiple_staff_same_slot', sa.Boolean(), nullable=False),
        sa.Column('reminders_enabled', sa.Boolean(), nullable=False),
        sa.Column('reminder_offsets', sa.JSON(), nullable=True),
        sa.Column('copied_from_coach', sa.Boolean(), nullable=False),
        sa.Column('last_synced_with_coach', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('owner_type', 'owner_id', name='uq_availabilities_owner'),
    )
    op.create_index('ix_availabilities_coach_id', 'availabilities', ['coach_id'])

    op.create_table(
        'working_hours',
        _pk(),
        sa.Column('availability_id', sa.BigInteger(),
                  sa.ForeignKey('availabilities.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_week', sa.SmallInteger(), nullable=False),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.UniqueConstraint('availability_id', 'day_of_week', name='uq_working_hours_day'),
    )

    op.create_table(
        'blackout_intervals',
        _pk(),
        sa.Column('availability_id', sa.BigInteger(),
                  sa.ForeignKey('availabilities.id', ondelete='CASCADE'), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.String(200), nullable=True),
    )
    op.create_index('ix_blackout_intervals_availability_id', 'blackout_intervals', ['availability_id'])

    op.create_table(
        'staff',
        _pk(),
        sa.Column('coach_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('distribution_ratio', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_staff_coach_id', 'staff', ['coach_id'])

    op.create_table(
        'staff_calendar_events',
        _pk(),
        sa.Column('staff_id', sa.BigInteger(), sa.ForeignKey('staff.id', ondelete='CASCADE'), nullable=False),
        sa.Column('coach_id', sa.String(64), nullable=False),
        sa.Column('event_type', sa.String(32), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_staff_calendar_events_staff_window', 'staff_calendar_events',
                    ['staff_id', 'starts_at', 'ends_at'])

    op.create_table(
        'appointments',
        _pk(),
        sa.Column('coach_id', sa.String(64), nullable=False),
        sa.Column('lead_id', sa.String(64), nullable=False),
        sa.Column('assigned_staff_id', sa.BigInteger(),
                  sa.ForeignKey('staff.id', ondelete='SET NULL'), nullable=True),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_min', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('time_zone', sa.String(64), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='booked'),
        sa.Column('seat', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('meeting_id', sa.String(64), nullable=True),
        sa.Column('meeting_join_url', sa.Text(), nullable=True),
        sa.Column('meeting_start_url', sa.Text(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'uq_appointments_coach_slot_seat', 'appointments', ['coach_id', 'starts_at', 'seat'],
        unique=True, postgresql_where=BLOCKING, sqlite_where=BLOCKING,
    )
    op.create_index('ix_appointments_coach_id_starts_at', 'appointments', ['coach_id', 'starts_at'])
    op.create_index('ix_appointments_assigned_staff_id', 'appointments', ['assigned_staff_id'])

    op.create_table(
        'leads',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('coach_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(120), nullable=True),
        sa.Column('assigned_to', sa.BigInteger(), sa.ForeignKey('staff.id', ondelete='SET NULL'), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_leads_coach_id_assigned_to', 'leads', ['coach_id', 'assigned_to'])

    op.create_table(
        'scheduled_reminders',
        _pk(),
        sa.Column('appointment_id', sa.BigInteger(),
                  sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('coach_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('minutes_before', sa.Integer(), nullable=False),
        sa.Column('channel', sa.String(32), nullable=False),
        sa.Column('fire_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_scheduled_reminders_status_fire_at', 'scheduled_reminders', ['status', 'fire_at'])
    op.create_index('ix_scheduled_reminders_appointment_id', 'scheduled_reminders', ['appointment_id'])

    op.create_table(
        'meeting_credentials',
        _pk(),
        sa.Column('owner_id', sa.String(64), nullable=False, unique=True),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('meeting_credentials')
    op.drop_index('ix_scheduled_reminders_appointment_id', table_name='scheduled_reminders')
    op.drop_index('ix_scheduled_reminders_status_fire_at', table_name='scheduled_reminders')
    op.drop_table('scheduled_reminders')
    op.drop_index('ix_leads_coach_id_assigned_to', table_name='leads')
    op.drop_table('leads')
    op.drop_index('ix_appointments_assigned_staff_id', table_name='appointments')
    op.drop_index('ix_appointments_coach_id_starts_at', table_name='appointments')
    op.drop_index('uq_appointments_coach_slot_seat', table_name='appointments')
    op.drop_table('appointments')
    op.drop_index('ix_staff_calendar_events_staff_window', table_name='staff_calendar_events')
    op.drop_table('staff_calendar_events')
    op.drop_index('ix_staff_coach_id', table_name='staff')
    op.drop_table('staff')
    op.drop_index('ix_blackout_intervals_availability_id', table_name='blackout_intervals')
    op.drop_table('blackout_intervals')
    op.drop_table('working_hours')
    op.drop_index('ix_availabilities_coach_id', table_name='availabilities')
    op.drop_table('availabilities')
