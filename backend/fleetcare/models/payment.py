from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from fleetcare.core.database import Base


class PaymentRecord(Base):
    """確定した入金の記録 (作成後は更新しない)"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    payment_method = Column(String(50), nullable=False)
    payment_status = Column(String(20), nullable=False, default="completed")
    payment_type = Column(String(20), nullable=False, default="subscription")
    payment_reference = Column(String(255), nullable=False)
    reconciliation_key = Column(String(100), nullable=False, unique=True, comment="支払い確認イベント単位のキー")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
