"""
FollowupTouch — one outbound contact attempt ("log as sent") for a prospect.
"""
from sqlalchemy import Column, Text, DateTime, Index
from sqlalchemy.sql import func

from introdesk.database import Base


class FollowupTouch(Base):
    __tablename__ = 'followup_touches'

    id = Column(Text, primary_key=True)
    booking_id = Column(Text, nullable=True)
    run_id = Column(Text, nullable=True)
    member_name = Column(Text, nullable=True)
    touch_type = Column(Text, nullable=False)
    channel = Column(Text, nullable=True)
    script_category = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_followup_touches_booking_id', 'booking_id'),
        Index('ix_followup_touches_created_at', 'created_at'),
    )
