from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SAEnum, func
from fleetcare.core.database import Base


class User(Base):
    """認証基盤のユーザーのミラー (ロール判定と請求書の宛名に使う)"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=False, default="")
    phone = Column(String(50), nullable=True)
    role = Column(
        SAEnum("customer", "technician", "admin", name="user_role"),
        nullable=False,
        default="customer",
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
