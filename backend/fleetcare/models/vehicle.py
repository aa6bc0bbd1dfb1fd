from sqlalchemy import Column, Integer, String, DateTime, Enum as SAEnum, ForeignKey, func
from fleetcare.core.database import Base


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False, index=True)
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=True)
    vin = Column(String(17), nullable=True)
    license_plate = Column(String(30), nullable=True)
    subscription_status = Column(
        SAEnum("pending_payment", "active", name="vehicle_subscription_status"),
        nullable=False,
        default="pending_payment",
    )
    created_at = Column(DateTime, nullable=False, server_default=func.now())
