from typing import Callable, Literal
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_parking_service, get_clock
from app.schemas.parking import (
    EntryCreate,
    LicensePlateRequest,
    EntryResponse,
    ChargeEvaluationResponse,
    ChargeDetailsResponse,
    LastSettlementResponse,
    SettledPaymentResponse,
    ClosedVisitResponse,
)
from app.services import records
from app.services.billing_config import get_configuration
from app.services.parking import ParkingService
from app.utils.response import success_response

router = APIRouter(prefix="/parking", tags=["parking"])


@router.post("/entry", status_code=201)
async def create_entry(payload: EntryCreate, service: ParkingService = Depends(get_parking_service)):
    result = await service.arrive(payload.license_plate, payload.image_path)
    data = EntryResponse.model_validate(result).model_dump()
    return success_response(data=data, message="Vehicle entry recorded")


@router.get("/entry/latest/{license_plate}")
async def get_latest_entry(license_plate: str, db: AsyncSession = Depends(get_db)):
    return success_response(data=await records.latest_entry(db, license_plate))


@router.get("/entry-records")
async def get_entry_records(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    config = await get_configuration(db)
    return success_response(data=await records.list_active(db, page, limit, clock(), config))


@router.get("/entry-exit-records")
async def get_entry_exit_records(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    config = await get_configuration(db)
    return success_response(data=await records.list_completed(db, page, limit, clock(), config))


@router.get("/records")
async def get_all_records(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    sort_by: Literal["entry_time", "exit_time"] = "entry_time",
    sort_order: Literal["ASC", "DESC"] = "DESC",
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    config = await get_configuration(db)
    data = await records.list_records(db, page, limit, clock(), config, sort_by=sort_by, sort_order=sort_order)
    return success_response(data=data)


@router.post("/payment/check")
async def check_payment(payload: LicensePlateRequest, service: ParkingService = Depends(get_parking_service)):
    """Evaluate what the vehicle owes now.

    Not a pure read: when a new charge is due and nothing is pending, a new
    pending payment is opened.
    """
    evaluation = await service.evaluate_charge(payload.license_plate)

    last_settlement = None
    if evaluation.last_settlement is not None:
        last_settlement = LastSettlementResponse(
            payment_id=evaluation.last_settlement.id,
            amount=evaluation.last_settlement.amount,
            settled_at=evaluation.last_settlement.settled_at,
            valid_until=evaluation.last_settlement_valid_until,
        )
    new_charge = None
    if evaluation.new_charge is not None:
        new_charge = ChargeDetailsResponse.model_validate(evaluation.new_charge)

    data = ChargeEvaluationResponse(
        license_plate=payload.license_plate.strip(),
        entry_time=evaluation.entry_time,
        current_time=evaluation.current_time,
        needs_new_payment=evaluation.needs_new_payment,
        last_settlement=last_settlement,
        new_charge=new_charge,
        pending_payment_id=evaluation.pending_payment.id if evaluation.pending_payment else None,
    ).model_dump()
    return success_response(data=data)


@router.post("/payment")
async def settle_payment(payload: LicensePlateRequest, service: ParkingService = Depends(get_parking_service)):
    result = await service.settle(payload.license_plate)
    data = SettledPaymentResponse.model_validate(result).model_dump()
    return success_response(data=data, message="Payment settled")


@router.post("/exit")
async def record_exit(payload: LicensePlateRequest, service: ParkingService = Depends(get_parking_service)):
    result = await service.close(payload.license_plate)
    data = ClosedVisitResponse.model_validate(result).model_dump()
    return success_response(data=data, message="Vehicle exit recorded")


@router.get("/payment-history/{license_plate}")
async def get_payment_history(license_plate: str, service: ParkingService = Depends(get_parking_service)):
    return success_response(data=await service.history(license_plate))
