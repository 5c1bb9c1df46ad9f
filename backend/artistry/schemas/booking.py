# backend/artistry/schemas/booking.py
from __future__ import annotations
from pydantic import BaseModel, Field
from datetime import date, datetime, time
from typing import Optional

from ..models.enquiry import EnquiryStatus

# -----------------------------
# SLOTS
# -----------------------------

class SlotIn(BaseModel):
    """Single slot created by staff."""
    slot_date: date
    start_time: time
    end_time: time

class SlotBulkIn(BaseModel):
    """Template-based generation over [start_date, end_date]; duration from service_name."""
    start_date: date
    end_date: date
    service_name: Optional[str] = Field(None, max_length=200)

class SlotAvailabilityIn(BaseModel):
    is_available: bool

class SlotOut(BaseModel):
    id: int
    slot_date: date
    start_time: time
    end_time: time
    is_available: bool
    class Config:
        from_attributes = True  # pydantic v2

class SlotBulkOut(BaseModel):
    ok: bool = True
    created: int
    skipped: int
    slots: list[SlotOut] = []

class SlotDeleteOut(BaseModel):
    ok: bool = True
    cancelled: int

class CascadeOut(BaseModel):
    ok: bool = True
    cancelled: int

# -----------------------------
# BLOCKED DATES
# -----------------------------

class BlockedDateIn(BaseModel):
    """A single date, or a range when end_date is given (one row per day)."""
    start_date: date
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=200)

class BlockedDateOut(BaseModel):
    id: int
    date: date
    reason: Optional[str] = None
    class Config:
        from_attributes = True

# -----------------------------
# ENQUIRIES
# -----------------------------

class EnquiryIn(BaseModel):
    """Customer form. Required fields are checked by the service so it can list them all."""
    service_type_id: Optional[int] = None
    service_option: str = Field("", max_length=200)
    time_slot_id: Optional[int] = None
    client_name: str = Field("", max_length=200)
    client_email: str = Field("", max_length=320)
    client_phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=2000)

class EnquiryOut(BaseModel):
    id: int
    service_type_id: Optional[int] = None
    service_option: str
    booking_date: Optional[date] = None
    time_slot_id: Optional[int] = None
    client_name: str
    client_email: str
    client_phone: Optional[str] = None
    notes: Optional[str] = None
    status: EnquiryStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class AdminEnquiryOut(EnquiryOut):
    admin_notes: Optional[str] = None
    slot: Optional[SlotOut] = None

class AdminNotesIn(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=4000)

class ConfirmOut(BaseModel):
    enquiry: AdminEnquiryOut
    auto_cancelled: int
