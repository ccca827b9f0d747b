from typing import Callable
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_clock
from app.services import records
from app.utils.response import success_response

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.get("")
async def get_vehicles(db: AsyncSession = Depends(get_db), clock: Callable[[], datetime] = Depends(get_clock)):
    return success_response(data=await records.list_vehicles(db, clock()))


@router.get("/{license_plate}")
async def get_vehicle(
    license_plate: str,
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    return success_response(data=await records.get_vehicle(db, license_plate, clock()))
