from app.models.vehicle import Vehicle
from app.models.member import Member
from app.models.session import ParkingSession, ArchivedSession
from app.models.payment import PaymentRecord, PaymentOwner, PaymentOwnerKind
from app.models.configuration import BillingConfiguration

__all__ = [
    "Vehicle",
    "Member",
    "ParkingSession",
    "ArchivedSession",
    "PaymentRecord",
    "PaymentOwner",
    "PaymentOwnerKind",
    "BillingConfiguration",
]
