"""Create intro bookings, runs and follow-up touches

Revision ID: 3f9a61c0d2e4
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a61c0d2e4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'intros_booked',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('member_name', sa.Text(), nullable=False),
        sa.Column('class_date', sa.Date(), nullable=False),
        sa.Column('intro_time', sa.Text(), nullable=True),
        sa.Column('booking_status', sa.Text(), nullable=False, server_default='Active'),
        sa.Column('booking_type', sa.Text(), nullable=False, server_default='Standard'),
        sa.Column('intro_owner', sa.Text(), nullable=True),
        sa.Column('intro_owner_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('originating_booking_id', sa.Text(), nullable=True),
        sa.Column('lead_source', sa.Text(), nullable=True),
        sa.Column('coach_name', sa.Text(), nullable=True),
        sa.Column('booked_by', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('reschedule_contact_date', sa.Date(), nullable=True),
        sa.Column('followup_dismissed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ignore_from_metrics', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_edited_by', sa.Text(), nullable=True),
        sa.Column('edit_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_intros_booked_class_date', 'intros_booked', ['class_date'])
    op.create_index('ix_intros_booked_originating_booking_id', 'intros_booked',
                    ['originating_booking_id'])

    op.create_table(
        'intros_run',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('member_name', sa.Text(), nullable=False),
        sa.Column('linked_booking_id', sa.Text(), nullable=True),
        sa.Column('run_date', sa.Date(), nullable=True),
        sa.Column('class_time', sa.Text(), nullable=True),
        sa.Column('result', sa.Text(), nullable=True),
        sa.Column('intro_owner', sa.Text(), nullable=True),
        sa.Column('intro_owner_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ran_by', sa.Text(), nullable=True),
        sa.Column('lead_source', sa.Text(), nullable=True),
        sa.Column('commission_amount', sa.Float(), nullable=True),
        sa.Column('is_vip', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ignore_from_metrics', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_edited_by', sa.Text(), nullable=True),
        sa.Column('edit_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_intros_run_run_date', 'intros_run', ['run_date'])
    op.create_index('ix_intros_run_linked_booking_id', 'intros_run', ['linked_booking_id'])

    op.create_table(
        'followup_touches',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('booking_id', sa.Text(), nullable=True),
        sa.Column('run_id', sa.Text(), nullable=True),
        sa.Column('member_name', sa.Text(), nullable=True),
        sa.Column('touch_type', sa.Text(), nullable=False),
        sa.Column('channel', sa.Text(), nullable=True),
        sa.Column('script_category', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_followup_touches_booking_id', 'followup_touches', ['booking_id'])
    op.create_index('ix_followup_touches_created_at', 'followup_touches', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_followup_touches_created_at', table_name='followup_touches')
    op.drop_index('ix_followup_touches_booking_id', table_name='followup_touches')
    op.drop_table('followup_touches')
    op.drop_index('ix_intros_run_linked_booking_id', table_name='intros_run')
    op.drop_index('ix_intros_run_run_date', table_name='intros_run')
    op.drop_table('intros_run')
    op.drop_index('ix_intros_booked_originating_booking_id', table_name='intros_booked')
    op.drop_index('ix_intros_booked_class_date', table_name='intros_booked')
    op.drop_table('intros_booked')
