from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from app.models.payment import PaymentRecord
from app.models.session import ParkingSession, ArchivedSession
from app.models.vehicle import Vehicle
from app.services import ledger, parking
from app.utils.clock import from_iso
from app.utils.exceptions import ConflictError, NotFoundError, PaymentRequiredError, ValidationError
from tests.conftest import T0

PLATE = "ABC-123"


async def _count(session_factory, column, *criteria) -> int:
    async with session_factory() as db:
        result = await db.execute(select(func.count(column)).where(*criteria))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_arrive_creates_vehicle_session_and_pending_payment(service, session_factory):
    result = await service.arrive(PLATE, "/photos/abc.jpg")

    assert result.license_plate == PLATE
    assert result.entry_time == T0
    async with session_factory() as db:
        vehicle = await db.get(Vehicle, result.vehicle_id)
        parking_session = await db.get(ParkingSession, result.session_id)
        payment = await db.get(PaymentRecord, result.pending_payment_id)

    assert vehicle.license_plate == PLATE
    assert parking_session.vehicle_id == vehicle.id
    assert parking_session.photo_path == "/photos/abc.jpg"
    assert from_iso(parking_session.entered_at) == T0
    assert payment.session_id == parking_session.id
    assert payment.amount == 0
    assert payment.settled_at is None


@pytest.mark.asyncio
async def test_arrive_twice_is_a_conflict(service, session_factory):
    first = await service.arrive(PLATE)

    with pytest.raises(ConflictError):
        await service.arrive(PLATE)

    assert await _count(session_factory, ParkingSession.id, ParkingSession.vehicle_id == first.vehicle_id) == 1
    assert await _count(session_factory, PaymentRecord.id) == 1


@pytest.mark.asyncio
async def test_arrive_with_stale_vehicle_lookup_is_a_conflict(service, session_factory, monkeypatch):
    await service.arrive(PLATE)

    async def missing_vehicle(db, plate):
        return None

    # A concurrent arrival that looked the plate up before the first one committed
    monkeypatch.setattr(parking, "find_vehicle", missing_vehicle)
    with pytest.raises(ConflictError):
        await service.arrive(PLATE)

    assert await _count(session_factory, Vehicle.id) == 1
    assert await _count(session_factory, ParkingSession.id) == 1


@pytest.mark.asyncio
async def test_arrive_reuses_known_vehicle(service, session_factory, clock):
    first = await service.arrive(PLATE)
    clock.advance(minutes=10)
    await service.settle(PLATE)
    await service.close(PLATE)

    clock.advance(hours=5)
    second = await service.arrive(PLATE)

    assert second.vehicle_id == first.vehicle_id
    assert second.session_id != first.session_id
    assert await _count(session_factory, Vehicle.id) == 1


@pytest.mark.asyncio
async def test_arrive_requires_plate(service):
    with pytest.raises(ValidationError):
        await service.arrive("   ")


@pytest.mark.asyncio
async def test_unknown_plate_is_not_found(service):
    with pytest.raises(NotFoundError):
        await service.evaluate_charge("NOPE-1")
    with pytest.raises(NotFoundError):
        await service.settle("NOPE-1")
    with pytest.raises(NotFoundError):
        await service.close("NOPE-1")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "elapsed, hours",
    [
        (timedelta(minutes=59), 1),
        (timedelta(minutes=31), 1),
        (timedelta(minutes=30), 0),
    ],
)
async def test_evaluate_charge_rounding(service, elapsed, hours):
    await service.arrive(PLATE)

    evaluation = await service.evaluate_charge(PLATE, T0 + elapsed)

    assert evaluation.needs_new_payment
    assert evaluation.new_charge.parked_hours == hours
    assert evaluation.new_charge.amount == Decimal(20 * hours)


@pytest.mark.asyncio
async def test_repeated_checks_keep_one_unsettled_payment(service, session_factory):
    result = await service.arrive(PLATE)

    for minutes in (10, 40, 70, 130):
        await service.evaluate_charge(PLATE, T0 + timedelta(minutes=minutes))

    assert await ledger_unsettled(session_factory, result.session_id) == 1


async def ledger_unsettled(session_factory, session_id) -> int:
    async with session_factory() as db:
        return await ledger.count_unsettled(db, session_id)


@pytest.mark.asyncio
async def test_settle_then_check_within_validity_window(service):
    await service.arrive(PLATE)
    settled_at = T0 + timedelta(hours=1)

    settled = await service.settle(PLATE, settled_at)
    evaluation = await service.evaluate_charge(PLATE, settled_at + timedelta(seconds=30))

    assert settled.amount == Decimal("20")
    assert settled.parked_hours == 1
    assert settled.settled_at == settled_at
    assert not evaluation.needs_new_payment
    assert evaluation.start_time == settled_at


@pytest.mark.asyncio
async def test_settle_without_pending_payment(service):
    await service.arrive(PLATE)
    await service.settle(PLATE, T0 + timedelta(hours=1))

    with pytest.raises(NotFoundError):
        await service.settle(PLATE, T0 + timedelta(hours=1, seconds=10))


@pytest.mark.asyncio
async def test_settle_bills_from_last_settlement(service):
    await service.arrive(PLATE)
    await service.settle(PLATE, T0 + timedelta(hours=1))

    # Window lapsed: the check opens a new pending payment
    evaluation = await service.evaluate_charge(PLATE, T0 + timedelta(hours=3))
    settled = await service.settle(PLATE, T0 + timedelta(hours=3))

    assert evaluation.needs_new_payment
    assert evaluation.start_time == T0 + timedelta(hours=1)
    assert settled.parked_hours == 2
    assert settled.amount == Decimal("40")


@pytest.mark.asyncio
async def test_close_blocked_by_unsettled_zero_amount_payment(service, session_factory):
    result = await service.arrive(PLATE)

    with pytest.raises(PaymentRequiredError):
        await service.close(PLATE, T0 + timedelta(minutes=10))

    assert await _count(session_factory, ParkingSession.id, ParkingSession.id == result.session_id) == 1
    assert await _count(session_factory, ArchivedSession.id) == 0


@pytest.mark.asyncio
async def test_close_blocked_when_fee_due(service):
    await service.arrive(PLATE)

    with pytest.raises(PaymentRequiredError):
        await service.close(PLATE, T0 + timedelta(hours=2))


@pytest.mark.asyncio
async def test_close_blocked_after_window_lapses(service, session_factory):
    result = await service.arrive(PLATE)
    await service.settle(PLATE, T0 + timedelta(hours=1))

    with pytest.raises(PaymentRequiredError):
        await service.close(PLATE, T0 + timedelta(hours=2))

    # The pending payment opened by the refused exit remains to be settled
    assert await ledger_unsettled(session_factory, result.session_id) == 1
    await service.settle(PLATE, T0 + timedelta(hours=2))
    closed = await service.close(PLATE, T0 + timedelta(hours=2, seconds=20))
    assert len(closed.payments) == 2


@pytest.mark.asyncio
async def test_close_archives_session_and_moves_payments(service, session_factory):
    result = await service.arrive(PLATE, "/photos/abc.jpg")
    settled_at = T0 + timedelta(hours=1)
    await service.settle(PLATE, settled_at)
    exit_time = settled_at + timedelta(seconds=30)

    closed = await service.close(PLATE, exit_time)

    assert closed.entry_time == T0
    assert closed.exit_time == exit_time
    assert [p.payment_id for p in closed.payments] == [result.pending_payment_id]
    assert await _count(session_factory, ParkingSession.id) == 0
    assert await _count(session_factory, PaymentRecord.id, PaymentRecord.session_id == result.session_id) == 0

    async with session_factory() as db:
        archived = (await db.execute(select(ArchivedSession))).scalars().all()
        payments = (await db.execute(select(PaymentRecord))).scalars().all()

    assert len(archived) == 1
    assert archived[0].id == closed.archived_session_id
    assert from_iso(archived[0].entered_at) == T0
    assert from_iso(archived[0].exited_at) == exit_time
    assert archived[0].photo_path == "/photos/abc.jpg"
    assert all(p.archived_session_id == archived[0].id and p.session_id is None for p in payments)


@pytest.mark.asyncio
async def test_close_rolls_back_when_reparenting_fails(service, session_factory, monkeypatch):
    result = await service.arrive(PLATE)
    await service.settle(PLATE, T0 + timedelta(hours=1))

    async def broken_reparent(db, parking_session, archived_session):
        raise RuntimeError("store went away")

    monkeypatch.setattr(ledger, "reparent_payments", broken_reparent)

    with pytest.raises(RuntimeError):
        await service.close(PLATE, T0 + timedelta(hours=1, seconds=10))

    assert await _count(session_factory, ArchivedSession.id) == 0
    assert await _count(session_factory, ParkingSession.id, ParkingSession.id == result.session_id) == 1
    assert await _count(session_factory, PaymentRecord.id, PaymentRecord.session_id == result.session_id) == 1
    assert await _count(session_factory, PaymentRecord.id, PaymentRecord.archived_session_id.is_not(None)) == 0


@pytest.mark.asyncio
async def test_history(service, clock):
    await service.arrive(PLATE)
    await service.settle(PLATE, T0 + timedelta(hours=1))
    await service.close(PLATE, T0 + timedelta(hours=1, seconds=10))
    clock.advance(hours=4)
    await service.arrive(PLATE)

    history = await service.history(PLATE)

    assert history["license_plate"] == PLATE
    assert len(history["active_visits"]) == 1
    assert len(history["completed_visits"]) == 1
    assert history["totals"]["total_visits"] == 2
    assert history["totals"]["total_payments"] == 2
    assert history["totals"]["total_amount"] == Decimal("20")
