from datetime import date
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_notifier
from ..schemas.booking import EnquiryIn, EnquiryOut, SlotOut
from ..services import enquiries, slots
from ..services.notifications import Notifier

router = APIRouter(prefix="/booking", tags=["booking"])


# -----------------------------------------------------------------------------
# AVAILABILITY (public booking modal)
# -----------------------------------------------------------------------------
@router.get("/slots", response_model=List[SlotOut])
def available_slots(day: date, db: Session = Depends(get_db)):
    return slots.available_slots(db, day)


# -----------------------------------------------------------------------------
# ENQUIRY (slot stays open until staff confirm)
# -----------------------------------------------------------------------------
@router.post("/enquiries", response_model=EnquiryOut, status_code=201)
def submit_enquiry(
    payload: EnquiryIn,
    db: Session = Depends(get_db),
    notify: Notifier = Depends(get_notifier),
):
    return enquiries.submit_enquiry(db, payload, notify=notify)
