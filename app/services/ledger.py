"""Payment records attached to a parking session.

An open session carries at most one unsettled payment at a time. Settling a
payment starts a validity window during which no new charge accrues; once the
window lapses the next charge is billed from the settlement time.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import PaymentRecord, PaymentOwner
from app.models.session import ParkingSession, ArchivedSession
from app.services.billing_config import BillingConfig
from app.services.fees import billable_hours, amount_due
from app.utils.clock import to_iso, from_iso
from app.utils.exceptions import ConflictError

logger = logging.getLogger(__name__)


@dataclass
class ChargeDetails:
    start_time: datetime
    parked_hours: int
    amount: Decimal
    discount: Decimal


@dataclass
class ChargeEvaluation:
    needs_new_payment: bool
    entry_time: datetime
    current_time: datetime
    start_time: datetime
    last_settlement: PaymentRecord | None = None
    last_settlement_valid_until: datetime | None = None
    new_charge: ChargeDetails | None = None
    pending_payment: PaymentRecord | None = None


async def open_pending(db: AsyncSession, parking_session: ParkingSession, discount=0) -> PaymentRecord:
    payment = PaymentRecord(
        id=str(uuid.uuid4()),
        amount=Decimal("0"),
        discount=Decimal(str(discount)),
        settled_at=None,
    )
    payment.owner = PaymentOwner.session(parking_session.id)
    db.add(payment)
    await db.flush()
    logger.debug("Opened pending payment %s for session %s", payment.id, parking_session.id)
    return payment


async def settle(db: AsyncSession, payment: PaymentRecord, amount, settled_at: datetime) -> PaymentRecord:
    """Mark an unsettled payment as paid.

    The update only matches while ``settled_at`` is still null, so of two
    concurrent settlements exactly one wins; the loser gets ConflictError.
    """
    result = await db.execute(
        update(PaymentRecord)
        .where(PaymentRecord.id == payment.id, PaymentRecord.settled_at.is_(None))
        .values(amount=Decimal(str(amount)), settled_at=to_iso(settled_at))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(f"Payment {payment.id} is already settled")

    await db.refresh(payment)
    return payment


def is_payment_window_valid(last_settled: PaymentRecord | None, now: datetime, validity_window_minutes: int) -> bool:
    if last_settled is None or last_settled.settled_at is None:
        return False
    return now <= valid_until(last_settled, validity_window_minutes)


def valid_until(payment: PaymentRecord, validity_window_minutes: int) -> datetime:
    return from_iso(payment.settled_at) + timedelta(minutes=validity_window_minutes)


async def find_last_settled(db: AsyncSession, session_id: str) -> PaymentRecord | None:
    result = await db.execute(
        select(PaymentRecord)
        .where(PaymentRecord.session_id == session_id, PaymentRecord.settled_at.is_not(None))
        .order_by(PaymentRecord.settled_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def find_unsettled(db: AsyncSession, session_id: str) -> PaymentRecord | None:
    result = await db.execute(
        select(PaymentRecord).where(
            PaymentRecord.session_id == session_id,
            PaymentRecord.settled_at.is_(None),
        )
    )
    return result.scalars().first()


async def count_unsettled(db: AsyncSession, session_id: str) -> int:
    result = await db.execute(
        select(func.count(PaymentRecord.id)).where(
            PaymentRecord.session_id == session_id,
            PaymentRecord.settled_at.is_(None),
        )
    )
    return result.scalar_one()


async def payments_for_session(db: AsyncSession, session_id: str) -> list[PaymentRecord]:
    result = await db.execute(select(PaymentRecord).where(PaymentRecord.session_id == session_id))
    return list(result.scalars().all())


async def payments_for_archived_session(db: AsyncSession, archived_session_id: str) -> list[PaymentRecord]:
    result = await db.execute(
        select(PaymentRecord).where(PaymentRecord.archived_session_id == archived_session_id)
    )
    return list(result.scalars().all())


# Once a settlement exists, later charges run from it rather than from entry.
def billing_start(parking_session: ParkingSession, last_settled: PaymentRecord | None) -> datetime:
    if last_settled is not None:
        return from_iso(last_settled.settled_at)
    return from_iso(parking_session.entered_at)


async def evaluate_charge(
    db: AsyncSession,
    parking_session: ParkingSession,
    now: datetime,
    config: BillingConfig,
) -> ChargeEvaluation:
    """Work out what the session owes at ``now``.

    This writes: when a new charge is due and no unsettled payment exists, a
    pending payment is opened carrying the previous discount. Repeated calls
    never open a second pending payment.
    """
    entry_time = from_iso(parking_session.entered_at)
    last_settled = await find_last_settled(db, parking_session.id)
    unsettled = await find_unsettled(db, parking_session.id)

    evaluation = ChargeEvaluation(
        needs_new_payment=True,
        entry_time=entry_time,
        current_time=now,
        start_time=billing_start(parking_session, last_settled),
        last_settlement=last_settled,
        pending_payment=unsettled,
    )
    if last_settled is not None:
        evaluation.last_settlement_valid_until = valid_until(last_settled, config.payment_valid_minutes)

    if is_payment_window_valid(last_settled, now, config.payment_valid_minutes):
        evaluation.needs_new_payment = False
        return evaluation

    if unsettled is not None:
        discount = unsettled.discount
    elif last_settled is not None:
        discount = last_settled.discount
    else:
        discount = Decimal("0")

    hours = billable_hours(now - evaluation.start_time, config.minute_rounding_threshold)
    evaluation.new_charge = ChargeDetails(
        start_time=evaluation.start_time,
        parked_hours=hours,
        amount=amount_due(hours, config.overflow_hour_rate, discount),
        discount=Decimal(discount),
    )

    if unsettled is None:
        evaluation.pending_payment = await open_pending(db, parking_session, discount=discount)
        logger.info("New billing window for session %s starting %s", parking_session.id, evaluation.start_time)

    return evaluation


async def reparent_payments(
    db: AsyncSession,
    parking_session: ParkingSession,
    archived_session: ArchivedSession,
) -> list[PaymentRecord]:
    payments = await payments_for_session(db, parking_session.id)
    for payment in payments:
        payment.owner = PaymentOwner.archived_session(archived_session.id)
    await db.flush()
    return payments
