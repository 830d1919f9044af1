"""Request bodies and query strings for the HTTP API.

Unknown fields are rejected so typos surface as 400s instead of being
silently ignored.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class CreateBookingRequest(_Strict):
    service_id: int
    date: str
    start_time: str
    with_addon: bool = False


class CancelBookingRequest(_Strict):
    reason: Optional[str] = Field(default=None, max_length=120)


class CreateServiceRequest(_Strict):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=255)
    price: int = Field(ge=0)
    duration_min: int = Field(gt=0, le=24 * 60)
    sort_order: int = 0
    service_type: str = Field(default="main", pattern="^(main|addon)$")


class UpdateServiceRequest(_Strict):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=255)
    price: Optional[int] = Field(default=None, ge=0)
    duration_min: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


class SlotPair(_Strict):
    start_time: str
    end_time: str


class CreateSlotsRequest(_Strict):
    date: str
    slots: Optional[List[SlotPair]] = None
    template: Optional[str] = None

    @model_validator(mode="after")
    def _one_source(self):
        if (self.slots is None) == (self.template is None):
            raise ValueError("Provide either slots or template")
        return self


class OpenDayRequest(_Strict):
    date: str
    from_hour: Optional[int] = Field(default=None, ge=0, le=23)
    to_hour: Optional[int] = Field(default=None, ge=1, le=24)


class SettingsUpdate(_Strict):
    tight_mode_days: Optional[int] = Field(default=None, ge=0, le=60)
    refund_threshold_hours: Optional[int] = Field(default=None, ge=0, le=24 * 14)


class ServiceFilterQuery(_Strict):
    service_id: Optional[int] = None


class CalendarQuery(_Strict):
    year: int
    month: int
    service_id: Optional[int] = None


class AvailableTimesQuery(_Strict):
    date: str
    service_id: int


class SlotsQuery(_Strict):
    date: str


class BookingsQuery(_Strict):
    date: Optional[str] = None
    date_from: Optional[str] = Field(default=None, alias="from")
    date_to: Optional[str] = Field(default=None, alias="to")
    status: Optional[str] = Field(default=None, pattern="^(pending_payment|confirmed|cancelled|expired)$")
