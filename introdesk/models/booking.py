"""
Booking — a scheduled (or formerly scheduled) intro class for a prospect.
"""
from sqlalchemy import Column, Text, Boolean, Date, DateTime, Index
from sqlalchemy.sql import func

from introdesk.database import Base


class Booking(Base):
    __tablename__ = 'intros_booked'

    id = Column(Text, primary_key=True)
    member_name = Column(Text, nullable=False)
    class_date = Column(Date, nullable=False)
    intro_time = Column(Text, nullable=True)
    booking_status = Column(Text, nullable=False, default='Active')
    booking_type = Column(Text, nullable=False, default='Standard')

    intro_owner = Column(Text, nullable=True)
    intro_owner_locked = Column(Boolean, nullable=False, default=False)
    originating_booking_id = Column(Text, nullable=True)

    lead_source = Column(Text, default='')
    coach_name = Column(Text, default='')
    booked_by = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    email = Column(Text, nullable=True)

    reschedule_contact_date = Column(Date, nullable=True)
    followup_dismissed_at = Column(DateTime(timezone=True), nullable=True)
    ignore_from_metrics = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    last_edited_at = Column(DateTime(timezone=True), nullable=True)
    last_edited_by = Column(Text, nullable=True)
    edit_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_intros_booked_class_date', 'class_date'),
        Index('ix_intros_booked_originating_booking_id', 'originating_booking_id'),
    )
