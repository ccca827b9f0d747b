import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.configuration import BillingConfiguration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BillingConfig:
    minute_rounding_threshold: int
    exit_buffer_time: int
    overflow_hour_rate: Decimal
    payment_valid_minutes: int
    configuration_id: int | None = None


def default_config() -> BillingConfig:
    return BillingConfig(
        minute_rounding_threshold=settings.default_minute_rounding_threshold,
        exit_buffer_time=settings.default_exit_buffer_time,
        overflow_hour_rate=Decimal(str(settings.default_overflow_hour_rate)),
        payment_valid_minutes=settings.payment_valid_minutes,
    )


async def get_latest_configuration(db: AsyncSession) -> BillingConfiguration | None:
    result = await db.execute(
        select(BillingConfiguration).order_by(BillingConfiguration.id.desc()).limit(1)
    )
    return result.scalars().first()


async def get_configuration(db: AsyncSession) -> BillingConfig:
    """Resolve billing parameters from the most recent configuration row, else settings defaults."""
    row = await get_latest_configuration(db)
    if row is None:
        logger.debug("No billing configuration stored, using defaults")
        return default_config()

    return BillingConfig(
        minute_rounding_threshold=row.minute_rounding_threshold,
        exit_buffer_time=row.exit_buffer_time,
        overflow_hour_rate=Decimal(row.overflow_hour_rate),
        payment_valid_minutes=settings.payment_valid_minutes,
        configuration_id=row.id,
    )
