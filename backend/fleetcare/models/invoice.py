from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, func
from fleetcare.core.database import Base


class Invoice(Base):
    """請求書 (作成後は更新しない)"""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_number = Column(String(50), nullable=False, unique=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False, index=True)
    payment_type = Column(String(20), nullable=False, default="subscription")
    amount = Column(Integer, nullable=False)
    subtotal = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    issue_date = Column(DateTime, nullable=False)
    payment_date = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="paid")
    payment_reference = Column(String(255), nullable=True)
    vehicle_info = Column(JSON, nullable=True, comment="{brand, model, year}")
    service_details = Column(String(500), nullable=False)
    customer_name = Column(String(200), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    reconciliation_key = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
