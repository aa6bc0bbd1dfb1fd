"""請求書参照"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fleetcare.core.database import get_db
from fleetcare.schemas.subscription import InvoiceInfo
from fleetcare.services import payment_service
from fleetcare.routers.deps import Identity, require_admin, require_customer

router = APIRouter(prefix="/api", tags=["invoices"])


@router.get("/invoices/mine", response_model=list[InvoiceInfo])
async def my_invoices(identity: Identity = Depends(require_customer), db: Session = Depends(get_db)):
    return payment_service.list_invoices(db, customer_id=identity.user_id)


@router.get("/admin/invoices", response_model=list[InvoiceInfo])
async def list_invoices(
    customer_id: Optional[int] = None,
    subscription_id: Optional[int] = None,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    return payment_service.list_invoices(db, customer_id=customer_id, subscription_id=subscription_id)
