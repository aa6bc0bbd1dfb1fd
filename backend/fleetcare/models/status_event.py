from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint, Index, func
from fleetcare.core.database import Base


class StatusEvent(Base):
    """状態遷移の追記専用ログ (エンティティごとに seq が単調増加)"""

    __tablename__ = "status_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(30), nullable=False, comment="subscription/assignment/visit/payment/invoice")
    entity_id = Column(Integer, nullable=False)
    seq = Column(Integer, nullable=False)
    subscription_id = Column(Integer, nullable=True, index=True, comment="親購読 (購読単位の購読用)")
    action = Column(String(50), nullable=False)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=True)
    actor_id = Column(Integer, nullable=True, index=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "seq", name="uq_status_event_seq"),
        Index("ix_status_event_entity", "entity_type", "entity_id"),
    )
