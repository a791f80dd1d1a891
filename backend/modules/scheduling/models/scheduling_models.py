from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum, Boolean, JSON, Text, CheckConstraint
from sqlalchemy.orm import relationship

from core.database import Base
from core.clock import utc_now
from ..enums.scheduling_enums import ShiftStatus, ShiftType


class Shift(Base):
    __tablename__ = "shifts"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    position = Column(String(50), nullable=False)
    shift_type = Column(Enum(ShiftType), nullable=False, default=ShiftType.DINE_IN)

    # Time details (naive UTC)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    break_minutes = Column(Integer, nullable=False, default=0)

    # Assignment; only set while status is in ASSIGNED_STATUSES
    assigned_worker_id = Column(Integer, ForeignKey("worker_profiles.id"), nullable=True, index=True)
    offered_to = Column(JSON, nullable=False, default=list)
    offer_expires_at = Column(DateTime, nullable=True)

    notes = Column(Text)
    auto_approve = Column(Boolean, nullable=False, default=False)
    min_reputation_score = Column(Float, nullable=True)
    hourly_rate_override = Column(Float, nullable=True)

    status = Column(Enum(ShiftStatus), nullable=False, default=ShiftStatus.DRAFT, index=True)
    version = Column(Integer, nullable=False, default=1)

    # Tracking
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"))
    published_at = Column(DateTime)

    # Relationships
    restaurant = relationship("Restaurant")
    assigned_worker = relationship("WorkerProfile", foreign_keys=[assigned_worker_id])
    claims = relationship("ShiftClaim", back_populates="shift", order_by="ShiftClaim.claimed_at")
    history = relationship(
        "ShiftStatusHistory", back_populates="shift", order_by="ShiftStatusHistory.id"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_shift_times"),
    )

    def __repr__(self):
        return f"<Shift(id={self.id}, status={self.status}, restaurant_id={self.restaurant_id})>"


class ShiftStatusHistory(Base):
    """Append-only audit trail of accepted status transitions"""
    __tablename__ = "shift_status_history"

    id = Column(Integer, primary_key=True, index=True)
    shift_id = Column(Integer, ForeignKey("shifts.id"), nullable=False, index=True)
    from_status = Column(Enum(ShiftStatus), nullable=False)
    to_status = Column(Enum(ShiftStatus), nullable=False)
    changed_by = Column(String(50), nullable=False, default="SYSTEM")
    reason = Column(Text)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    shift = relationship("Shift", back_populates="history")
