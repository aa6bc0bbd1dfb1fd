from sqlalchemy import (
    Column, Integer, String, Text, DateTime, JSON, Enum as SAEnum, ForeignKey, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from fleetcare.core.database import Base

VISIT_STATUSES = ("in_progress", "pending_confirmation", "confirmed", "rejected")


class Visit(Base):
    __tablename__ = "visits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False, index=True)
    assignment_id = Column(Integer, ForeignKey("assignments.id"), nullable=False)
    technician_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    visit_number = Column(Integer, nullable=False, comment="購読内の連番 (1〜、欠番なし)")
    status = Column(SAEnum(*VISIT_STATUSES, name="visit_status"), nullable=False, default="in_progress", index=True)
    # in_progress の間だけ1。(subscription_id, in_progress_slot) のUNIQUEで同時進行を防ぐ
    in_progress_slot = Column(Integer, nullable=True)

    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    confirmed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejected_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    findings = Column(Text, nullable=True, comment="所見 (自由記述)")
    system_findings = Column(JSON, nullable=False, default=list, comment="[{system, status, note}]")
    recommendations = Column(Text, nullable=True)
    work_performed = Column(Text, nullable=True)
    parts_used = Column(JSON, nullable=False, default=list, comment="[{name, quantity, cost}]")
    duration_minutes = Column(Integer, nullable=True)
    location = Column(String(255), nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    inspections = relationship("VisitInspection", order_by="VisitInspection.id", lazy="selectin")
    media = relationship("VisitMedia", order_by="VisitMedia.id", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("subscription_id", "visit_number", name="uq_visit_number"),
        UniqueConstraint("subscription_id", "in_progress_slot", name="uq_visit_in_progress"),
    )


class VisitInspection(Base):
    __tablename__ = "visit_inspections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    visit_id = Column(Integer, ForeignKey("visits.id"), nullable=False, index=True)
    component = Column(String(255), nullable=False)
    status = Column(
        SAEnum("good", "fair", "needs_attention", "critical", name="inspection_status"),
        nullable=False,
        default="good",
    )
    notes = Column(Text, nullable=True)


class VisitMedia(Base):
    __tablename__ = "visit_media"

    id = Column(Integer, primary_key=True, autoincrement=True)
    visit_id = Column(Integer, ForeignKey("visits.id"), nullable=False, index=True)
    url = Column(String(1000), nullable=False)
    storage_path = Column(String(500), nullable=False)
    caption = Column(String(255), nullable=True, comment="元ファイル名")
    media_type = Column(SAEnum("photo", "video", name="media_type"), nullable=False, default="photo")
    category = Column(String(50), nullable=False, default="issue")
    uploaded_at = Column(DateTime, nullable=False, server_default=func.now())
