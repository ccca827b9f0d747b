from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class EntryCreate(BaseModel):
    license_plate: str
    image_path: str | None = None


class LicensePlateRequest(BaseModel):
    license_plate: str


class EntryResponse(BaseModel):
    vehicle_id: str
    session_id: str
    pending_payment_id: str
    license_plate: str
    entry_time: datetime

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    payment_id: str
    amount: Decimal
    discount: Decimal
    settled_at: datetime | None = None

    model_config = {"from_attributes": True}


class LastSettlementResponse(BaseModel):
    payment_id: str
    amount: Decimal
    settled_at: datetime
    valid_until: datetime


class ChargeDetailsResponse(BaseModel):
    start_time: datetime
    parked_hours: int
    amount: Decimal
    discount: Decimal

    model_config = {"from_attributes": True}


class ChargeEvaluationResponse(BaseModel):
    license_plate: str
    entry_time: datetime
    current_time: datetime
    needs_new_payment: bool
    last_settlement: LastSettlementResponse | None = None
    new_charge: ChargeDetailsResponse | None = None
    pending_payment_id: str | None = None


class SettledPaymentResponse(BaseModel):
    payment_id: str
    license_plate: str
    amount: Decimal
    discount: Decimal
    settled_at: datetime
    entry_time: datetime
    parked_hours: int

    model_config = {"from_attributes": True}


class ClosedVisitResponse(BaseModel):
    archived_session_id: str
    license_plate: str
    entry_time: datetime
    exit_time: datetime
    payments: list[PaymentResponse]

    model_config = {"from_attributes": True}
