from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, Boolean, Text, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from core.database import Base
from core.clock import utc_now
from ..enums.shift_pool_enums import ClaimStatus, SwapStatus


class ShiftClaim(Base):
    """A worker's request to take an open shift"""
    __tablename__ = "shift_claims"

    id = Column(Integer, primary_key=True, index=True)
    shift_id = Column(Integer, ForeignKey("shifts.id"), nullable=False, index=True)
    worker_id = Column(Integer, ForeignKey("worker_profiles.id"), nullable=False, index=True)

    # Computed once when the claim is submitted
    priority_score = Column(Integer, nullable=False, default=0)

    status = Column(Enum(ClaimStatus), nullable=False, default=ClaimStatus.PENDING, index=True)
    rejection_reason = Column(String(255))
    notes = Column(Text)

    claimed_at = Column(DateTime, default=utc_now, nullable=False)
    expires_at = Column(DateTime, nullable=True, index=True)
    resolved_at = Column(DateTime)
    resolved_by_id = Column(Integer, ForeignKey("users.id"))

    shift = relationship("Shift", back_populates="claims")
    worker = relationship("WorkerProfile")

    __table_args__ = (
        UniqueConstraint("shift_id", "worker_id", name="uq_shift_claim_worker"),
    )

    def __repr__(self):
        return f"<ShiftClaim(id={self.id}, shift_id={self.shift_id}, status={self.status})>"


class ShiftSwap(Base):
    """
    Exchange or give-away of an assigned shift.

    With a target shift the two workers trade shifts; without one the source
    shift is handed to the target worker.
    """
    __tablename__ = "shift_swaps"

    id = Column(Integer, primary_key=True, index=True)

    source_shift_id = Column(Integer, ForeignKey("shifts.id"), nullable=False)
    source_worker_id = Column(Integer, ForeignKey("worker_profiles.id"), nullable=False)
    target_shift_id = Column(Integer, ForeignKey("shifts.id"), nullable=True)
    target_worker_id = Column(Integer, ForeignKey("worker_profiles.id"), nullable=True)

    status = Column(Enum(SwapStatus), nullable=False, default=SwapStatus.PENDING, index=True)

    requires_approval = Column(Boolean, nullable=False, default=False)
    target_accepted = Column(Boolean, nullable=False, default=False)
    manager_approved = Column(Boolean, nullable=True)
    approved_by_id = Column(Integer, ForeignKey("users.id"))

    message = Column(Text)
    rejection_reason = Column(String(255))

    created_at = Column(DateTime, default=utc_now, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime)

    source_shift = relationship("Shift", foreign_keys=[source_shift_id])
    target_shift = relationship("Shift", foreign_keys=[target_shift_id])
    source_worker = relationship("WorkerProfile", foreign_keys=[source_worker_id])
    target_worker = relationship("WorkerProfile", foreign_keys=[target_worker_id])

    __table_args__ = (
        Index("idx_shift_swap_status_expiry", "status", "expires_at"),
    )

    @property
    def is_trade(self) -> bool:
        return self.target_shift_id is not None

    @property
    def can_execute(self) -> bool:
        return not self.requires_approval or self.manager_approved is True

    def __repr__(self):
        return f"<ShiftSwap(id={self.id}, status={self.status})>"
