from sqlalchemy import Column, Integer, Text, DateTime, Enum as SAEnum, ForeignKey, UniqueConstraint, func
from fleetcare.core.database import Base


class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False, index=True)
    technician_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(SAEnum("active", "ended", name="assignment_status"), nullable=False, default="active")
    # active の間だけ1、ended でNULL。(subscription_id, active_slot) のUNIQUEで二重activeを防ぐ
    active_slot = Column(Integer, nullable=True)
    assigned_at = Column(DateTime, nullable=False, server_default=func.now())
    ended_at = Column(DateTime, nullable=True)
    ended_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        UniqueConstraint("subscription_id", "active_slot", name="uq_assignment_active_slot"),
    )
