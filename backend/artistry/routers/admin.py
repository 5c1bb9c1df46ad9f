from datetime import date
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_notifier, require_admin
from ..models.enquiry import EnquiryStatus
from ..schemas.booking import (
    AdminEnquiryOut,
    AdminNotesIn,
    BlockedDateIn,
    BlockedDateOut,
    CascadeOut,
    ConfirmOut,
    SlotAvailabilityIn,
    SlotBulkIn,
    SlotBulkOut,
    SlotDeleteOut,
    SlotIn,
    SlotOut,
)
from ..services import confirmation, enquiries, slots
from ..services.notifications import Notifier

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# -----------------------------------------------------------------------------
# SLOTS
# -----------------------------------------------------------------------------
@router.get("/slots", response_model=List[SlotOut])
def list_slots(start: date | None = None, end: date | None = None, db: Session = Depends(get_db)):
    return slots.list_slots(db, start, end)


@router.post("/slots", response_model=SlotOut, status_code=201)
def create_slot(payload: SlotIn, db: Session = Depends(get_db)):
    return slots.create_slot(db, payload.slot_date, payload.start_time, payload.end_time)


@router.post("/slots/bulk", response_model=SlotBulkOut)
def generate_slots(payload: SlotBulkIn, db: Session = Depends(get_db)):
    res = slots.generate_slots(db, payload.start_date, payload.end_date, payload.service_name)
    # no exception on partial skips: counts are shown in the panel
    return SlotBulkOut(
        created=res.created,
        skipped=res.skipped,
        slots=[SlotOut.model_validate(s) for s in res.slots],
    )


@router.patch("/slots/{slot_id}/availability", response_model=SlotOut)
def set_availability(slot_id: int, payload: SlotAvailabilityIn, db: Session = Depends(get_db)):
    return slots.toggle_availability(db, slot_id, payload.is_available)


@router.delete("/slots/{slot_id}", response_model=SlotDeleteOut)
def delete_slot(slot_id: int, db: Session = Depends(get_db), notify: Notifier = Depends(get_notifier)):
    return SlotDeleteOut(cancelled=slots.delete_slot(db, slot_id, notify=notify))


@router.post("/slots/{slot_id}/cascade", response_model=CascadeOut)
def cascade(slot_id: int, db: Session = Depends(get_db), notify: Notifier = Depends(get_notifier)):
    return CascadeOut(cancelled=confirmation.cascade_cancel(db, slot_id, notify=notify))


# -----------------------------------------------------------------------------
# BLOCKED DATES
# -----------------------------------------------------------------------------
@router.get("/blocked-dates", response_model=List[BlockedDateOut])
def list_blocked(start: date | None = None, db: Session = Depends(get_db)):
    return slots.list_blocked_dates(db, start)


@router.post("/blocked-dates", response_model=List[BlockedDateOut], status_code=201)
def block(payload: BlockedDateIn, db: Session = Depends(get_db)):
    return slots.block_dates(db, payload.start_date, payload.end_date, payload.reason)


@router.delete("/blocked-dates/{blocked_id}")
def unblock(blocked_id: int, db: Session = Depends(get_db)):
    slots.unblock_date(db, blocked_id)
    return {"ok": True}


# -----------------------------------------------------------------------------
# ENQUIRIES
# -----------------------------------------------------------------------------
@router.get("/enquiries", response_model=List[AdminEnquiryOut])
def list_enquiries(
    status: EnquiryStatus | None = None,
    slot_id: int | None = None,
    db: Session = Depends(get_db),
):
    return enquiries.list_enquiries(db, status, slot_id)


@router.get("/enquiries/{enquiry_id}", response_model=AdminEnquiryOut)
def get_enquiry(enquiry_id: int, db: Session = Depends(get_db)):
    return enquiries.get_enquiry(db, enquiry_id)


@router.patch("/enquiries/{enquiry_id}/notes", response_model=AdminEnquiryOut)
def update_notes(enquiry_id: int, payload: AdminNotesIn, db: Session = Depends(get_db)):
    return enquiries.update_admin_notes(db, enquiry_id, payload.admin_notes)


@router.post("/enquiries/{enquiry_id}/confirm", response_model=ConfirmOut)
def confirm(enquiry_id: int, db: Session = Depends(get_db), notify: Notifier = Depends(get_notifier)):
    res = confirmation.confirm(db, enquiry_id, notify=notify)
    return ConfirmOut(enquiry=AdminEnquiryOut.model_validate(res.enquiry), auto_cancelled=res.auto_cancelled)


@router.post("/enquiries/{enquiry_id}/reject", response_model=AdminEnquiryOut)
def reject(enquiry_id: int, db: Session = Depends(get_db), notify: Notifier = Depends(get_notifier)):
    return confirmation.reject(db, enquiry_id, notify=notify)


@router.post("/enquiries/{enquiry_id}/cancel", response_model=AdminEnquiryOut)
def cancel(enquiry_id: int, db: Session = Depends(get_db), notify: Notifier = Depends(get_notifier)):
    return confirmation.cancel_confirmed(db, enquiry_id, notify=notify)


@router.post("/enquiries/{enquiry_id}/complete", response_model=AdminEnquiryOut)
def complete(enquiry_id: int, db: Session = Depends(get_db)):
    return confirmation.complete(db, enquiry_id)
