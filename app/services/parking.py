"""Open/closed lifecycle of a vehicle's visit and the commands that drive it.

Every command runs in its own unit of work: either all of its writes land or
none do.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import async_session, unit_of_work
from app.models.payment import PaymentRecord
from app.models.session import ParkingSession, ArchivedSession
from app.models.vehicle import Vehicle
from app.services import ledger, records
from app.services.billing_config import BillingConfig, get_configuration
from app.services.fees import billable_hours, amount_due
from app.services.ledger import ChargeEvaluation
from app.utils.clock import utc_now, to_iso, from_iso
from app.utils.exceptions import ConflictError, NotFoundError, PaymentRequiredError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class EntryResult:
    vehicle_id: str
    session_id: str
    pending_payment_id: str
    license_plate: str
    entry_time: datetime


@dataclass
class SettledPayment:
    payment_id: str
    license_plate: str
    amount: Decimal
    discount: Decimal
    settled_at: datetime
    entry_time: datetime
    parked_hours: int


@dataclass
class PaymentView:
    payment_id: str
    amount: Decimal
    discount: Decimal
    settled_at: datetime | None


@dataclass
class ClosedVisit:
    archived_session_id: str
    license_plate: str
    entry_time: datetime
    exit_time: datetime
    payments: list[PaymentView] = field(default_factory=list)


def normalize_plate(license_plate: str | None) -> str:
    if license_plate is None or not license_plate.strip():
        raise ValidationError("License plate is required")
    return license_plate.strip()


async def find_vehicle(db: AsyncSession, license_plate: str) -> Vehicle | None:
    result = await db.execute(select(Vehicle).where(Vehicle.license_plate == license_plate))
    return result.scalars().first()


async def get_open_session(db: AsyncSession, license_plate: str) -> tuple[Vehicle, ParkingSession]:
    vehicle = await find_vehicle(db, license_plate)
    if vehicle is None:
        raise NotFoundError(f"No vehicle with plate {license_plate}")

    result = await db.execute(select(ParkingSession).where(ParkingSession.vehicle_id == vehicle.id))
    parking_session = result.scalars().first()
    if parking_session is None:
        raise NotFoundError(f"No open parking session for plate {license_plate}")

    return vehicle, parking_session


async def check_checkout_eligibility(
    db: AsyncSession,
    parking_session: ParkingSession,
    now: datetime,
    config: BillingConfig,
) -> ChargeEvaluation:
    evaluation = await ledger.evaluate_charge(db, parking_session, now, config)
    if evaluation.needs_new_payment and evaluation.new_charge.amount > 0:
        raise PaymentRequiredError("Cannot exit: parking fee is due")

    if await ledger.count_unsettled(db, parking_session.id) > 0:
        raise PaymentRequiredError("Cannot exit: a payment is still pending")

    return evaluation


async def close_session(db: AsyncSession, parking_session: ParkingSession, now: datetime) -> ArchivedSession:
    """Archive the session and move its payments over. Caller owns the transaction."""
    if now < from_iso(parking_session.entered_at):
        raise ValidationError("Exit time precedes entry time")

    archived = ArchivedSession(
        id=str(uuid.uuid4()),
        vehicle_id=parking_session.vehicle_id,
        entered_at=parking_session.entered_at,
        exited_at=to_iso(now),
        photo_path=parking_session.photo_path,
    )
    db.add(archived)
    await db.flush()

    await ledger.reparent_payments(db, parking_session, archived)

    await db.delete(parking_session)
    await db.flush()
    return archived


def _payment_view(payment: PaymentRecord) -> PaymentView:
    return PaymentView(
        payment_id=payment.id,
        amount=payment.amount,
        discount=payment.discount,
        settled_at=from_iso(payment.settled_at),
    )


class ParkingService:
    def __init__(
        self,
        session_factory: async_sessionmaker = async_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._clock = clock

    def _unit_of_work(self):
        return unit_of_work(self._session_factory)

    async def arrive(self, license_plate: str, photo_path: str | None = None, now: datetime | None = None) -> EntryResult:
        plate = normalize_plate(license_plate)
        now = now or self._clock()

        async with self._unit_of_work() as db:
            vehicle = await find_vehicle(db, plate)
            # A racing arrival for the same plate fails one of these flushes:
            # the vehicle plate or the open-session vehicle uniqueness.
            try:
                if vehicle is None:
                    vehicle = Vehicle(id=str(uuid.uuid4()), license_plate=plate)
                    db.add(vehicle)
                    await db.flush()

                parking_session = ParkingSession(
                    id=str(uuid.uuid4()),
                    vehicle_id=vehicle.id,
                    entered_at=to_iso(now),
                    photo_path=photo_path,
                )
                db.add(parking_session)
                await db.flush()
            except IntegrityError as exc:
                raise ConflictError(f"Vehicle {plate} already has an open parking session") from exc

            payment = await ledger.open_pending(db, parking_session)

        logger.info("Vehicle %s entered, session %s", plate, parking_session.id)
        return EntryResult(
            vehicle_id=vehicle.id,
            session_id=parking_session.id,
            pending_payment_id=payment.id,
            license_plate=plate,
            entry_time=now,
        )

    async def evaluate_charge(self, license_plate: str, now: datetime | None = None) -> ChargeEvaluation:
        plate = normalize_plate(license_plate)
        now = now or self._clock()

        async with self._unit_of_work() as db:
            _, parking_session = await get_open_session(db, plate)
            config = await get_configuration(db)
            return await ledger.evaluate_charge(db, parking_session, now, config)

    async def settle(self, license_plate: str, now: datetime | None = None) -> SettledPayment:
        plate = normalize_plate(license_plate)
        now = now or self._clock()

        async with self._unit_of_work() as db:
            _, parking_session = await get_open_session(db, plate)
            pending = await ledger.find_unsettled(db, parking_session.id)
            if pending is None:
                raise NotFoundError(f"No outstanding payment for plate {plate}")

            config = await get_configuration(db)
            last_settled = await ledger.find_last_settled(db, parking_session.id)
            start = ledger.billing_start(parking_session, last_settled)
            hours = billable_hours(now - start, config.minute_rounding_threshold)
            amount = amount_due(hours, config.overflow_hour_rate, pending.discount)

            payment = await ledger.settle(db, pending, amount, now)

        logger.info("Payment %s settled for %s: %s", payment.id, plate, payment.amount)
        return SettledPayment(
            payment_id=payment.id,
            license_plate=plate,
            amount=payment.amount,
            discount=payment.discount,
            settled_at=from_iso(payment.settled_at),
            entry_time=from_iso(parking_session.entered_at),
            parked_hours=hours,
        )

    async def close(self, license_plate: str, now: datetime | None = None) -> ClosedVisit:
        plate = normalize_plate(license_plate)
        now = now or self._clock()

        # The charge check commits on its own so that a pending payment it opens
        # survives a refused exit and can be settled afterwards.
        await self.evaluate_charge(plate, now)

        async with self._unit_of_work() as db:
            _, parking_session = await get_open_session(db, plate)
            config = await get_configuration(db)
            try:
                await check_checkout_eligibility(db, parking_session, now, config)
            except PaymentRequiredError as exc:
                logger.warning("Exit refused for %s: %s", plate, exc.message)
                raise

            archived = await close_session(db, parking_session, now)
            payments = await ledger.payments_for_archived_session(db, archived.id)

        logger.info("Vehicle %s exited, archived session %s", plate, archived.id)
        return ClosedVisit(
            archived_session_id=archived.id,
            license_plate=plate,
            entry_time=from_iso(archived.entered_at),
            exit_time=from_iso(archived.exited_at),
            payments=[_payment_view(p) for p in payments],
        )

    async def history(self, license_plate: str) -> dict:
        plate = normalize_plate(license_plate)
        async with self._session_factory() as db:
            return await records.payment_history(db, plate)
