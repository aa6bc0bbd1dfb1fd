# 全モデルをインポート (Alembic autogenerate用)
from fleetcare.models.user import User
from fleetcare.models.plan import Plan
from fleetcare.models.subscription import Subscription
from fleetcare.models.vehicle import Vehicle
from fleetcare.models.assignment import Assignment
from fleetcare.models.visit import Visit, VisitInspection, VisitMedia
from fleetcare.models.payment import PaymentRecord
from fleetcare.models.invoice import Invoice
from fleetcare.models.status_event import StatusEvent
from fleetcare.models.system_log import SystemLog

__all__ = [
    "User",
    "Plan",
    "Subscription",
    "Vehicle",
    "Assignment",
    "Visit",
    "VisitInspection",
    "VisitMedia",
    "PaymentRecord",
    "Invoice",
    "StatusEvent",
    "SystemLog",
]
