"""Read-side views over open and archived sessions."""
import math
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.member import Member
from app.models.payment import PaymentRecord
from app.models.session import ParkingSession, ArchivedSession
from app.models.vehicle import Vehicle
from app.services.billing_config import BillingConfig
from app.services.fees import billable_hours, amount_due
from app.utils.clock import from_iso
from app.utils.exceptions import NotFoundError

SORT_FIELDS = ("entry_time", "exit_time")
SORT_ORDERS = ("ASC", "DESC")


def is_vip(vehicle: Vehicle | None, now: datetime) -> bool:
    if vehicle is None or vehicle.vip_expires_at is None:
        return False
    return from_iso(vehicle.vip_expires_at) > now


def vehicle_data(vehicle: Vehicle, now: datetime) -> dict:
    return {
        "id": vehicle.id,
        "license_plate": vehicle.license_plate,
        "member_id": vehicle.member_id,
        "vip_expires_at": from_iso(vehicle.vip_expires_at),
        "is_vip": is_vip(vehicle, now),
    }


def payment_data(payment: PaymentRecord) -> dict:
    return {
        "payment_id": payment.id,
        "amount": payment.amount,
        "discount": payment.discount,
        "settled_at": from_iso(payment.settled_at),
    }


def _newest_settlement_first(payments: list[PaymentRecord]) -> list[PaymentRecord]:
    # Unsettled payments go last
    return sorted(payments, key=lambda p: p.settled_at or "", reverse=True)


async def _payments_by_owner(db: AsyncSession, column, owner_ids: list[str]) -> dict[str, list[PaymentRecord]]:
    grouped: dict[str, list[PaymentRecord]] = {owner_id: [] for owner_id in owner_ids}
    if not owner_ids:
        return grouped
    result = await db.execute(select(PaymentRecord).where(column.in_(owner_ids)))
    for payment in result.scalars().all():
        grouped[getattr(payment, column.key)].append(payment)
    return grouped


async def _vehicles_by_id(db: AsyncSession, vehicle_ids: set[str]) -> dict[str, Vehicle]:
    if not vehicle_ids:
        return {}
    result = await db.execute(select(Vehicle).where(Vehicle.id.in_(vehicle_ids)))
    return {v.id: v for v in result.scalars().all()}


def _active_entry(
    entry: ParkingSession,
    vehicle: Vehicle,
    payments: list[PaymentRecord],
    now: datetime,
    config: BillingConfig,
) -> dict:
    entry_time = from_iso(entry.entered_at)
    hours = billable_hours(now - entry_time, config.minute_rounding_threshold)
    return {
        "id": entry.id,
        "type": "active",
        "entry_time": entry_time,
        "exit_time": None,
        "photo_path": entry.photo_path,
        "vehicle": vehicle_data(vehicle, now),
        "is_vip": is_vip(vehicle, now),
        "parked_hours": hours,
        "parking_fee": amount_due(hours, config.overflow_hour_rate),
        "payments": [payment_data(p) for p in payments],
    }


def _completed_entry(
    entry: ArchivedSession,
    vehicle: Vehicle,
    payments: list[PaymentRecord],
    now: datetime,
    config: BillingConfig,
) -> dict:
    entry_time = from_iso(entry.entered_at)
    exit_time = from_iso(entry.exited_at)
    hours = billable_hours(exit_time - entry_time, config.minute_rounding_threshold)
    return {
        "id": entry.id,
        "type": "completed",
        "entry_time": entry_time,
        "exit_time": exit_time,
        "photo_path": entry.photo_path,
        "vehicle": vehicle_data(vehicle, now),
        "is_vip": is_vip(vehicle, now),
        "parked_hours": hours,
        "parking_fee": amount_due(hours, config.overflow_hour_rate),
        "payments": [payment_data(p) for p in payments],
    }


def _page_info(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


async def _fetch_active(db: AsyncSession, page: int, limit: int, descending: bool, now, config) -> tuple[list[dict], int]:
    order = ParkingSession.entered_at.desc() if descending else ParkingSession.entered_at.asc()
    total = (await db.execute(select(func.count(ParkingSession.id)))).scalar_one()
    result = await db.execute(select(ParkingSession).order_by(order).offset((page - 1) * limit).limit(limit))
    entries = result.scalars().all()

    vehicles = await _vehicles_by_id(db, {e.vehicle_id for e in entries})
    payments = await _payments_by_owner(db, PaymentRecord.session_id, [e.id for e in entries])
    return [_active_entry(e, vehicles[e.vehicle_id], payments[e.id], now, config) for e in entries], total


async def _fetch_completed(
    db: AsyncSession, page: int, limit: int, order_by, descending: bool, now, config
) -> tuple[list[dict], int]:
    order = order_by.desc() if descending else order_by.asc()
    total = (await db.execute(select(func.count(ArchivedSession.id)))).scalar_one()
    result = await db.execute(select(ArchivedSession).order_by(order).offset((page - 1) * limit).limit(limit))
    entries = result.scalars().all()

    vehicles = await _vehicles_by_id(db, {e.vehicle_id for e in entries})
    payments = await _payments_by_owner(db, PaymentRecord.archived_session_id, [e.id for e in entries])
    return [_completed_entry(e, vehicles[e.vehicle_id], payments[e.id], now, config) for e in entries], total


async def list_active(db: AsyncSession, page: int, limit: int, now: datetime, config: BillingConfig) -> dict:
    data, total = await _fetch_active(db, page, limit, True, now, config)
    return {"data": data, **_page_info(total, page, limit)}


async def list_completed(db: AsyncSession, page: int, limit: int, now: datetime, config: BillingConfig) -> dict:
    data, total = await _fetch_completed(db, page, limit, ArchivedSession.entered_at, True, now, config)
    return {"data": data, **_page_info(total, page, limit)}


async def list_records(
    db: AsyncSession,
    page: int,
    limit: int,
    now: datetime,
    config: BillingConfig,
    sort_by: str = "entry_time",
    sort_order: str = "DESC",
) -> dict:
    """Open and archived sessions in one list.

    Each kind is paginated on its own, then the two pages are merged. Sorting
    by exit time falls back to entry time for sessions still open.
    """
    descending = sort_order == "DESC"
    active, active_total = await _fetch_active(db, page, limit, descending, now, config)
    completed_order = ArchivedSession.exited_at if sort_by == "exit_time" else ArchivedSession.entered_at
    completed, completed_total = await _fetch_completed(db, page, limit, completed_order, descending, now, config)

    def sort_key(entry: dict) -> datetime:
        if sort_by == "entry_time":
            return entry["entry_time"]
        return entry["exit_time"] or entry["entry_time"]

    data = sorted(active + completed, key=sort_key, reverse=descending)
    return {
        "data": data,
        "pagination": {
            "current_page": page,
            "page_size": limit,
            "total_active_entries": active_total,
            "total_completed_entries": completed_total,
            "total_entries": active_total + completed_total,
        },
    }


async def get_vehicle(db: AsyncSession, license_plate: str, now: datetime) -> dict:
    result = await db.execute(select(Vehicle).where(Vehicle.license_plate == license_plate))
    vehicle = result.scalars().first()
    if vehicle is None:
        raise NotFoundError(f"No vehicle with plate {license_plate}")

    data = vehicle_data(vehicle, now)
    data["member"] = None
    if vehicle.member_id is not None:
        member = await db.get(Member, vehicle.member_id)
        if member is not None:
            data["member"] = {
                "id": member.id,
                "first_name": member.first_name,
                "last_name": member.last_name,
                "phone": member.phone,
            }
    return data


async def list_vehicles(db: AsyncSession, now: datetime) -> list[dict]:
    result = await db.execute(select(Vehicle).order_by(Vehicle.license_plate))
    return [vehicle_data(v, now) for v in result.scalars().all()]


async def latest_entry(db: AsyncSession, license_plate: str) -> dict:
    result = await db.execute(
        select(ParkingSession)
        .join(Vehicle, Vehicle.id == ParkingSession.vehicle_id)
        .where(Vehicle.license_plate == license_plate)
        .order_by(ParkingSession.entered_at.desc())
    )
    entry = result.scalars().first()
    if entry is None:
        raise NotFoundError(f"No open parking session for plate {license_plate}")
    return {
        "id": entry.id,
        "vehicle_id": entry.vehicle_id,
        "entry_time": from_iso(entry.entered_at),
        "photo_path": entry.photo_path,
    }


async def payment_history(db: AsyncSession, license_plate: str) -> dict:
    result = await db.execute(select(Vehicle).where(Vehicle.license_plate == license_plate))
    vehicle = result.scalars().first()
    if vehicle is None:
        raise NotFoundError(f"No vehicle with plate {license_plate}")

    result = await db.execute(
        select(ParkingSession)
        .where(ParkingSession.vehicle_id == vehicle.id)
        .order_by(ParkingSession.entered_at.desc())
    )
    active = result.scalars().all()
    result = await db.execute(
        select(ArchivedSession)
        .where(ArchivedSession.vehicle_id == vehicle.id)
        .order_by(ArchivedSession.exited_at.desc())
    )
    completed = result.scalars().all()

    active_payments = await _payments_by_owner(db, PaymentRecord.session_id, [e.id for e in active])
    completed_payments = await _payments_by_owner(
        db, PaymentRecord.archived_session_id, [e.id for e in completed]
    )

    active_visits = [
        {
            "type": "active",
            "entry_time": from_iso(e.entered_at),
            "exit_time": None,
            "payments": [payment_data(p) for p in _newest_settlement_first(active_payments[e.id])],
        }
        for e in active
    ]
    completed_visits = [
        {
            "type": "completed",
            "entry_time": from_iso(e.entered_at),
            "exit_time": from_iso(e.exited_at),
            "payments": [payment_data(p) for p in _newest_settlement_first(completed_payments[e.id])],
        }
        for e in completed
    ]

    all_payments = [p for group in (*active_payments.values(), *completed_payments.values()) for p in group]
    return {
        "license_plate": license_plate,
        "active_visits": active_visits,
        "completed_visits": completed_visits,
        "totals": {
            "total_visits": len(active) + len(completed),
            "total_payments": len(all_payments),
            "total_amount": sum((p.amount for p in all_payments), start=0),
        },
    }
