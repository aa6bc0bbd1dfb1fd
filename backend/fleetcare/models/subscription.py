from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SAEnum, ForeignKey, func
from fleetcare.core.database import Base

SUBSCRIPTION_STATUSES = ("pending_payment", "active", "cancelled", "expired")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False, index=True)
    status = Column(
        SAEnum(*SUBSCRIPTION_STATUSES, name="subscription_status"),
        nullable=False,
        default="pending_payment",
        index=True,
    )
    vehicle_count = Column(Integer, nullable=False, default=1)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    auto_renew = Column(Boolean, nullable=False, default=True)

    # 支払い証跡 (payment_method がセットされ未確認 = 確認待ち)
    payment_method = Column(String(50), nullable=True, comment="bank_transfer / cash 等")
    payment_reference = Column(String(255), nullable=True, comment="振込番号・レシート番号")
    payment_confirmed = Column(Boolean, nullable=False, default=False)
    payment_confirmed_at = Column(DateTime, nullable=True)
    payment_confirmed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    last_payment_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def awaiting_verification(self) -> bool:
        return self.status == "pending_payment" and self.payment_method is not None and not self.payment_confirmed
