from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class StatusEventInfo(BaseModel):
    id: int
    entity_type: str
    entity_id: int
    seq: int
    subscription_id: Optional[int] = None
    action: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    actor_id: Optional[int] = None
    details: Optional[dict] = None
    created_at: datetime

    model_config = {"from_attributes": True}
