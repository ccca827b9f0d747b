import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.configuration import BillingConfiguration
from app.schemas.configuration import ConfigurationCreate, ConfigurationResponse
from app.services.billing_config import get_configuration
from app.utils.clock import utc_now, to_iso
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/configurations", tags=["configurations"])


@router.get("/current")
async def get_current_configuration(db: AsyncSession = Depends(get_db)):
    config = await get_configuration(db)
    return success_response(data=ConfigurationResponse.model_validate(config).model_dump())


@router.post("", status_code=201)
async def create_configuration(payload: ConfigurationCreate, db: AsyncSession = Depends(get_db)):
    row = BillingConfiguration(
        note=payload.note,
        minute_rounding_threshold=payload.minute_rounding_threshold,
        exit_buffer_time=payload.exit_buffer_time,
        overflow_hour_rate=payload.overflow_hour_rate,
        created_at=to_iso(utc_now()),
    )
    db.add(row)
    await db.commit()
    logger.info("Billing configuration %s created", row.id)

    config = await get_configuration(db)
    return success_response(data=ConfigurationResponse.model_validate(config).model_dump())
