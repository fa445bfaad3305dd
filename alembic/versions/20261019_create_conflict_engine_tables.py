"""Create schedules, conflicts, facilities and time slot tables

Revision ID: 3f9a1c2e7b40
Revises:
Create Date: 2026-10-19

Initial schema for the conflict engine. The unique partial index on
schedule_conflicts keeps one live record per (pair, type); retired records
are soft-deleted and fall outside it.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from custody_scheduler.models.base import GUID


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2e7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list:
    return [
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table('facilities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('facility_type', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('facilities', schema=None) as batch_op:
        batch_op.create_index('idx_facility_active', ['active'], unique=False)

    op.create_table('schedules',
        sa.Column('schedule_type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('subject_id', sa.Integer(), nullable=False),
        sa.Column('facility_id', sa.Integer(), nullable=True),
        sa.Column('program_id', sa.Integer(), nullable=True),
        sa.Column('counterpart_id', sa.Integer(), nullable=True),
        sa.Column('responsible_officer', sa.String(length=150), nullable=True),
        sa.Column('location', sa.String(length=200), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('time_slot_key', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('additional_data', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'),
                  nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('schedules', schema=None) as batch_op:
        batch_op.create_index('idx_schedule_subject_time', ['subject_id', 'start_time', 'end_time'], unique=False)
        batch_op.create_index('idx_schedule_facility_time', ['facility_id', 'start_time', 'end_time'], unique=False)
        batch_op.create_index('idx_schedule_officer_time', ['responsible_officer', 'start_time', 'end_time'], unique=False)
        batch_op.create_index('idx_schedule_status', ['status'], unique=False)
        batch_op.create_index('idx_schedule_deleted', ['deleted_at'], unique=False)

    op.create_table('schedule_resources',
        sa.Column('schedule_id', GUID(), nullable=False),
        sa.Column('resource_key', sa.String(length=100), nullable=False),
        sa.ForeignKeyConstraint(['schedule_id'], ['schedules.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('schedule_id', 'resource_key')
    )
    with op.batch_alter_table('schedule_resources', schema=None) as batch_op:
        batch_op.create_index('idx_schedule_resource_key', ['resource_key'], unique=False)

    op.create_table('schedule_conflicts',
        sa.Column('schedule_a_id', GUID(), nullable=False),
        sa.Column('schedule_b_id', GUID(), nullable=False),
        sa.Column('conflict_type', sa.String(length=50), nullable=False),
        sa.Column('severity', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('detected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('acknowledged_by', sa.Integer(), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('resolved_by', sa.Integer(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('schedule_conflicts', schema=None) as batch_op:
        batch_op.create_index('idx_conflict_schedule_a', ['schedule_a_id'], unique=False)
        batch_op.create_index('idx_conflict_schedule_b', ['schedule_b_id'], unique=False)
        batch_op.create_index('idx_conflict_type', ['conflict_type'], unique=False)
        batch_op.create_index('idx_conflict_severity', ['severity'], unique=False)
        batch_op.create_index('idx_conflict_status', ['status'], unique=False)
        batch_op.create_index('idx_conflict_deleted', ['deleted_at'], unique=False)
        batch_op.create_index('idx_conflict_status_detected', ['status', 'detected_at'], unique=False)
        batch_op.create_index(
            'uq_conflict_pair_type',
            ['schedule_a_id', 'schedule_b_id', 'conflict_type'],
            unique=True,
            sqlite_where=sa.text('deleted_at IS NULL'),
            postgresql_where=sa.text('deleted_at IS NULL'),
        )

    op.create_table('time_slots',
        sa.Column('slot_key', sa.String(length=100), nullable=False),
        sa.Column('facility_id', sa.Integer(), nullable=True),
        sa.Column('label', sa.String(length=255), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('max_capacity', sa.Integer(), nullable=False),
        sa.Column('current_bookings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_available', sa.Boolean(), nullable=False),
        sa.Column('is_maintenance', sa.Boolean(), nullable=False),
        sa.Column('special_notes', sa.Text(), nullable=True),
        *_audit_columns(),
        sa.CheckConstraint('current_bookings >= 0', name='ck_time_slot_bookings_floor'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slot_key')
    )
    with op.batch_alter_table('time_slots', schema=None) as batch_op:
        batch_op.create_index('idx_time_slot_facility_time', ['facility_id', 'start_time', 'end_time'], unique=False)


def downgrade() -> None:
    with op.batch_alter_table('time_slots', schema=None) as batch_op:
        batch_op.drop_index('idx_time_slot_facility_time')
    op.drop_table('time_slots')

    with op.batch_alter_table('schedule_conflicts', schema=None) as batch_op:
        batch_op.drop_index('uq_conflict_pair_type')
        batch_op.drop_index('idx_conflict_status_detected')
        batch_op.drop_index('idx_conflict_deleted')
        batch_op.drop_index('idx_conflict_status')
        batch_op.drop_index('idx_conflict_severity')
        batch_op.drop_index('idx_conflict_type')
        batch_op.drop_index('idx_conflict_schedule_b')
        batch_op.drop_index('idx_conflict_schedule_a')
    op.drop_table('schedule_conflicts')

    with op.batch_alter_table('schedule_resources', schema=None) as batch_op:
        batch_op.drop_index('idx_schedule_resource_key')
    op.drop_table('schedule_resources')

    with op.batch_alter_table('schedules', schema=None) as batch_op:
        batch_op.drop_index('idx_schedule_deleted')
        batch_op.drop_index('idx_schedule_status')
        batch_op.drop_index('idx_schedule_officer_time')
        batch_op.drop_index('idx_schedule_facility_time')
        batch_op.drop_index('idx_schedule_subject_time')
    op.drop_table('schedules')

    with op.batch_alter_table('facilities', schema=None) as batch_op:
        batch_op.drop_index('idx_facility_active')
    op.drop_table('facilities')
