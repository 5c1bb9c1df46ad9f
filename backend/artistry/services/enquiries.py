# backend/artistry/services/enquiries.py
import logging

from sqlalchemy.orm import Session

from ..core.errors import SlotUnavailable, ValidationError
from ..models.enquiry import Enquiry, EnquiryStatus
from ..models.slot import TimeSlot
from ..schemas.booking import EnquiryIn
from . import confirmation, notifications
from .notifications import Notifier
from .slots import is_blocked
from .store import store_guard

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def validate_enquiry(payload: EnquiryIn) -> None:
    missing = [
        name
        for name, value in [
            ("service_option", payload.service_option),
            ("client_name", payload.client_name),
            ("client_email", payload.client_email),
        ]
        if not value or not value.strip()
    ]
    if payload.time_slot_id is None:
        missing.append("time_slot_id")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

    if not notifications.is_email(payload.client_email):
        raise ValidationError("Invalid email address", fields=["client_email"])


def submit_enquiry(
    db: Session,
    payload: EnquiryIn,
    notify: Notifier | None = notifications.send_email,
) -> Enquiry:
    """
    Records a pending enquiry against an open slot.

    The slot is re-read here rather than trusted from the customer's earlier
    listing, and is NOT reserved: several pending enquiries may target the
    same slot until staff confirm one of them.
    """
    validate_enquiry(payload)

    with store_guard(db, "submit enquiry"):
        slot = db.get(TimeSlot, payload.time_slot_id, populate_existing=True)
        if not slot or not slot.is_available or is_blocked(db, slot.slot_date):
            raise SlotUnavailable("This time slot is no longer available, please choose another one")

        e = Enquiry(
            service_type_id=payload.service_type_id,
            service_option=payload.service_option.strip(),
            booking_date=slot.slot_date,
            time_slot_id=slot.id,
            client_name=payload.client_name.strip(),
            client_email=payload.client_email.strip(),
            client_phone=_clean(payload.client_phone),
            notes=_clean(payload.notes),
            status=EnquiryStatus.PENDING,
        )
        db.add(e)
        db.commit()
        db.refresh(e)

    # slot reserved by a confirmation that landed while we were inserting
    if confirmation.void_if_slot_reserved(db, e.id):
        logger.info("Enquiry %s lost slot %s to a concurrent confirmation", e.id, slot.id)
        raise SlotUnavailable("This time slot is no longer available, please choose another one")

    logger.info("Enquiry %s submitted by %s for slot %s", e.id, e.client_email, slot.id)

    if notify:
        notifications.notify_enquiry_received(notify, e, slot)
    return e


def list_enquiries(db: Session, status: EnquiryStatus | None = None, slot_id: int | None = None) -> list[Enquiry]:
    with store_guard(db, "list enquiries"):
        q = db.query(Enquiry)
        if status:
            q = q.filter(Enquiry.status == status)
        if slot_id is not None:
            q = q.filter(Enquiry.time_slot_id == slot_id)
        return q.order_by(Enquiry.booking_date.asc(), Enquiry.created_at.asc(), Enquiry.id.asc()).all()


def get_enquiry(db: Session, enquiry_id: int) -> Enquiry:
    with store_guard(db, "read enquiry"):
        return confirmation.get_enquiry(db, enquiry_id)


def update_admin_notes(db: Session, enquiry_id: int, admin_notes: str | None) -> Enquiry:
    """Staff-only notes. Status is untouched."""
    with store_guard(db, "update admin notes"):
        e = confirmation.get_enquiry(db, enquiry_id)
        e.admin_notes = _clean(admin_notes)
        db.commit()
        db.refresh(e)
    return e
