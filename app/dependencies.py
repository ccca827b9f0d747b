from typing import Callable
from datetime import datetime

from app.services.parking import ParkingService
from app.utils.clock import utc_now


def get_parking_service() -> ParkingService:
    return ParkingService()


def get_clock() -> Callable[[], datetime]:
    return utc_now
