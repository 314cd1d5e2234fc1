"""
IntroRun — the outcome record of an intro class that actually took place.
"""
from sqlalchemy import Column, Text, Boolean, Date, DateTime, Float, Index
from sqlalchemy.sql import func

from introdesk.database import Base


class IntroRun(Base):
    __tablename__ = 'intros_run'

    id = Column(Text, primary_key=True)
    member_name = Column(Text, nullable=False)
    linked_booking_id = Column(Text, nullable=True)
    run_date = Column(Date, nullable=True)
    class_time = Column(Text, nullable=True)
    result = Column(Text, default='')

    intro_owner = Column(Text, nullable=True)
    intro_owner_locked = Column(Boolean, nullable=False, default=False)
    ran_by = Column(Text, nullable=True)
    lead_source = Column(Text, default='')
    commission_amount = Column(Float, nullable=True)

    is_vip = Column(Boolean, nullable=False, default=False)
    ignore_from_metrics = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    last_edited_at = Column(DateTime(timezone=True), nullable=True)
    last_edited_by = Column(Text, nullable=True)
    edit_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_intros_run_run_date', 'run_date'),
        Index('ix_intros_run_linked_booking_id', 'linked_booking_id'),
    )
