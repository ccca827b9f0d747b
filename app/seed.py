import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.configuration import BillingConfiguration
from app.models.member import Member
from app.models.vehicle import Vehicle
from app.utils.clock import to_iso


SEED_MEMBER = {
    "id": str(uuid.uuid5(uuid.NAMESPACE_DNS, "member-demo-001")),
    "first_name": "Demo",
    "last_name": "Member",
    "phone": "0800000001",
}

SEED_VEHICLES = [
    {
        "id": str(uuid.uuid5(uuid.NAMESPACE_DNS, "vehicle-vip-001")),
        "license_plate": "VIP-001",
        "member_id": SEED_MEMBER["id"],
        "vip_expires_at": to_iso(datetime(2099, 12, 31, tzinfo=timezone.utc)),
    },
]


async def seed_data(session: AsyncSession) -> None:
    result = await session.execute(select(BillingConfiguration).limit(1))
    if result.scalars().first() is not None:
        return

    session.add(BillingConfiguration(
        note="Default tariff",
        minute_rounding_threshold=settings.default_minute_rounding_threshold,
        exit_buffer_time=settings.default_exit_buffer_time,
        overflow_hour_rate=settings.default_overflow_hour_rate,
        created_at=to_iso(datetime.now(timezone.utc)),
    ))

    if await session.get(Member, SEED_MEMBER["id"]) is None:
        session.add(Member(**SEED_MEMBER))
        await session.flush()
        for v in SEED_VEHICLES:
            session.add(Vehicle(**v))

    await session.commit()
