from pydantic import BaseModel, Field
from typing import Literal, Optional


class PlanCreate(BaseModel):
    plan_name: str = Field(min_length=1, max_length=255)
    plan_type: str = "standard"
    plan_category: Literal["cardoc", "autodoc"] = "cardoc"
    billing_cycle: Literal["monthly", "yearly"] = "monthly"
    price: int = Field(ge=0)
    visits_per_month: int = Field(default=1, ge=1)
    max_vehicles: int = Field(default=1, ge=1)
    description: Optional[str] = None
    is_active: bool = True


class PlanInfo(BaseModel):
    id: int
    plan_name: str
    plan_type: str
    plan_category: str
    billing_cycle: str
    price: int
    visits_per_month: int
    max_vehicles: int
    description: Optional[str] = None
    is_active: bool

    model_config = {"from_attributes": True}
