from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class VehicleInput(BaseModel):
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1900, le=2100)
    vin: Optional[str] = None
    license_plate: Optional[str] = None


class SubscribeRequest(BaseModel):
    plan_id: int
    vehicle_count: int = Field(default=1, ge=1)
    vehicles: list[VehicleInput] = []
    auto_renew: bool = True


class PaymentEvidenceRequest(BaseModel):
    payment_method: str = Field(min_length=1, max_length=50)
    payment_reference: str = Field(min_length=1, max_length=255)


class RejectPaymentRequest(BaseModel):
    reason: str


class ExtendRequest(BaseModel):
    months: int


class AssignRequest(BaseModel):
    technician_id: int
    notes: Optional[str] = None


class VehicleInfo(BaseModel):
    id: int
    make: str
    model: str
    year: Optional[int] = None
    vin: Optional[str] = None
    license_plate: Optional[str] = None
    subscription_status: str

    model_config = {"from_attributes": True}


class SubscriptionInfo(BaseModel):
    id: int
    customer_id: int
    plan_id: int
    status: str
    vehicle_count: int
    start_date: datetime
    end_date: Optional[datetime] = None
    auto_renew: bool
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_confirmed: bool
    payment_confirmed_at: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    awaiting_verification: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AssignmentInfo(BaseModel):
    id: int
    subscription_id: int
    technician_id: int
    assigned_by: Optional[int] = None
    notes: Optional[str] = None
    status: str
    assigned_at: datetime
    ended_at: Optional[datetime] = None
    ended_by: Optional[int] = None

    model_config = {"from_attributes": True}


class PaymentInfo(BaseModel):
    id: int
    subscription_id: int
    amount: int
    currency: str
    payment_method: str
    payment_status: str
    payment_reference: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class InvoiceInfo(BaseModel):
    id: int
    invoice_number: str
    customer_id: int
    subscription_id: int
    amount: int
    subtotal: int
    currency: str
    issue_date: datetime
    payment_date: datetime
    status: str
    payment_reference: Optional[str] = None
    vehicle_info: Optional[dict] = None
    service_details: str
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None

    model_config = {"from_attributes": True}


class PaymentConfirmationResponse(BaseModel):
    subscription: SubscriptionInfo
    activated: bool
    already_confirmed: bool
    payment: Optional[PaymentInfo] = None
    invoice: Optional[InvoiceInfo] = None
    warnings: list[str] = []

    model_config = {"from_attributes": True}
