from decimal import Decimal

from pydantic import BaseModel, Field


class ConfigurationCreate(BaseModel):
    note: str | None = None
    minute_rounding_threshold: int = Field(ge=0, le=59)
    exit_buffer_time: int = Field(ge=0)
    overflow_hour_rate: Decimal = Field(ge=0)


class ConfigurationResponse(BaseModel):
    configuration_id: int | None = None
    minute_rounding_threshold: int
    exit_buffer_time: int
    overflow_hour_rate: Decimal
    payment_valid_minutes: int

    model_config = {"from_attributes": True}
