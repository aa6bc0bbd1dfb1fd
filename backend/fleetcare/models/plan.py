from sqlalchemy import Column, Integer, String, Boolean, Text, DateTime, Enum as SAEnum, func
from fleetcare.core.database import Base


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_name = Column(String(255), nullable=False, comment="プラン名")
    plan_type = Column(String(50), nullable=False, default="standard", comment="プラン種別")
    plan_category = Column(
        SAEnum("cardoc", "autodoc", name="plan_category"),
        nullable=False,
        default="cardoc",
    )
    billing_cycle = Column(
        SAEnum("monthly", "yearly", name="billing_cycle"),
        nullable=False,
        default="monthly",
        comment="請求サイクル: monthly=月額, yearly=年額",
    )
    price = Column(Integer, nullable=False, default=0, comment="1請求サイクルあたりの料金 (USD)")
    visits_per_month = Column(Integer, nullable=False, default=1)
    max_vehicles = Column(Integer, nullable=False, default=1)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
