# backend/artistry/services/confirmation.py
"""
Enquiry state machine and slot reservation.

This is the only module that changes Enquiry.status after creation or
TimeSlot.is_available. Every write is a conditional UPDATE on the state the
caller expects, committed on its own: there is no cross-table transaction to
lean on, so steps are ordered so that a crash in between leaves a slot
over-reserved rather than double-booked.

    pending   -> confirmed | cancelled
    confirmed -> cancelled (slot reopened) | completed (slot consumed)
    cancelled, completed: terminal
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..core.errors import InvalidTransition, NotFound, SlotAlreadyReserved, SlotInUse
from ..models.enquiry import Enquiry, EnquiryStatus
from ..models.slot import TimeSlot
from . import notifications
from .notifications import Notifier
from .store import conditional_update, store_guard

logger = logging.getLogger(__name__)

TRANSITIONS: dict[EnquiryStatus, frozenset[EnquiryStatus]] = {
    EnquiryStatus.PENDING: frozenset({EnquiryStatus.CONFIRMED, EnquiryStatus.CANCELLED}),
    EnquiryStatus.CONFIRMED: frozenset({EnquiryStatus.CANCELLED, EnquiryStatus.COMPLETED}),
    EnquiryStatus.CANCELLED: frozenset(),
    EnquiryStatus.COMPLETED: frozenset(),
}


@dataclass
class ConfirmationResult:
    enquiry: Enquiry
    # informational only, for staff feedback
    auto_cancelled: int


def can_transition(current: EnquiryStatus, target: EnquiryStatus) -> bool:
    return target in TRANSITIONS[current]


def _require(e: Enquiry, expected: EnquiryStatus, target: EnquiryStatus) -> None:
    if e.status != expected or not can_transition(e.status, target):
        raise InvalidTransition(
            f"Enquiry {e.id} is {e.status.value}: cannot move it to {target.value}"
        )


# -----------------------------------------
# Reads (always from the DB, never from the identity map)
# -----------------------------------------
def get_enquiry(db: Session, enquiry_id: int) -> Enquiry:
    e = db.get(Enquiry, enquiry_id, populate_existing=True)
    if not e:
        raise NotFound(f"Enquiry {enquiry_id} not found")
    return e


def get_slot(db: Session, slot_id: int) -> TimeSlot:
    s = db.get(TimeSlot, slot_id, populate_existing=True)
    if not s:
        raise NotFound(f"Time slot {slot_id} not found")
    return s


# -----------------------------------------
# Conditional writes
# -----------------------------------------
def _move(db: Session, enquiry_id: int, expected: EnquiryStatus, target: EnquiryStatus) -> bool:
    q = db.query(Enquiry).filter(Enquiry.id == enquiry_id, Enquiry.status == expected)
    return conditional_update(db, q, {"status": target}) == 1


def _claim_slot(db: Session, slot_id: int) -> bool:
    q = db.query(TimeSlot).filter(TimeSlot.id == slot_id, TimeSlot.is_available == True)
    return conditional_update(db, q, {"is_available": False}) == 1


def _reopen_slot(db: Session, slot_id: int) -> bool:
    q = db.query(TimeSlot).filter(TimeSlot.id == slot_id, TimeSlot.is_available == False)
    return conditional_update(db, q, {"is_available": True}) == 1


def _confirmed_holder(db: Session, slot_id: int, exclude: int | None = None) -> int | None:
    q = db.query(Enquiry.id).filter(
        Enquiry.time_slot_id == slot_id,
        Enquiry.status == EnquiryStatus.CONFIRMED,
    )
    if exclude is not None:
        q = q.filter(Enquiry.id != exclude)
    row = q.first()
    return row[0] if row else None


def _undo_claim(db: Session, slot_id: int) -> None:
    try:
        _reopen_slot(db, slot_id)
    except Exception:
        # slot stays reserved with no holder: staff can reopen it by hand
        db.rollback()
        logger.exception("Could not release claim on slot %s", slot_id)


def _cancel_pending_on_slot(db: Session, slot_id: int, exclude: int | None = None) -> list[Enquiry]:
    q = db.query(Enquiry).filter(
        Enquiry.time_slot_id == slot_id,
        Enquiry.status == EnquiryStatus.PENDING,
    )
    if exclude is not None:
        q = q.filter(Enquiry.id != exclude)
    rivals = q.order_by(Enquiry.id.asc()).all()

    # one UPDATE per rival: only the rows this call moved are reported
    return [r for r in rivals if _move(db, r.id, EnquiryStatus.PENDING, EnquiryStatus.CANCELLED)]


# -----------------------------------------
# Operations
# -----------------------------------------
def confirm(db: Session, enquiry_id: int, notify: Notifier | None = None) -> ConfirmationResult:
    """
    Confirms a pending enquiry: claims its slot and cancels every other
    pending enquiry on the same slot.

    Raises NotFound, SlotAlreadyReserved (slot already claimed or held by a
    confirmed enquiry, also when the claim is lost to a concurrent
    confirmation) or InvalidTransition.
    """
    with store_guard(db, "confirm enquiry"):
        e = get_enquiry(db, enquiry_id)
        if e.time_slot_id is None:
            raise NotFound(f"Enquiry {enquiry_id} has no time slot")
        slot = get_slot(db, e.time_slot_id)
        if not slot.is_available or _confirmed_holder(db, slot.id, exclude=e.id) is not None:
            raise SlotAlreadyReserved(f"Time slot {slot.id} is already reserved")
        _require(e, EnquiryStatus.PENDING, EnquiryStatus.CONFIRMED)

        # slot first, so a failure below never leaves two confirmed claims
        if not _claim_slot(db, slot.id):
            raise SlotAlreadyReserved(f"Time slot {slot.id} is already reserved")

        try:
            moved = _move(db, e.id, EnquiryStatus.PENDING, EnquiryStatus.CONFIRMED)
        except Exception:
            db.rollback()
            _undo_claim(db, slot.id)
            raise
        if not moved:
            _undo_claim(db, slot.id)
            raise InvalidTransition(f"Enquiry {enquiry_id} changed while being confirmed")

        cancelled = _cancel_pending_on_slot(db, slot.id, exclude=e.id)
        e = get_enquiry(db, e.id)
        slot = get_slot(db, slot.id)

    logger.info(
        "Enquiry %s confirmed on slot %s, %d rival(s) auto-cancelled",
        e.id, slot.id, len(cancelled),
    )

    if notify:
        notifications.notify_confirmed(notify, e, slot)
        for rival in cancelled:
            notifications.notify_cancelled(notify, rival, slot, slot_taken=True)

    return ConfirmationResult(enquiry=e, auto_cancelled=len(cancelled))


def reject(db: Session, enquiry_id: int, notify: Notifier | None = None) -> Enquiry:
    """pending -> cancelled. The slot was never reserved, so it's left alone."""
    with store_guard(db, "reject enquiry"):
        e = get_enquiry(db, enquiry_id)
        _require(e, EnquiryStatus.PENDING, EnquiryStatus.CANCELLED)
        if not _move(db, e.id, EnquiryStatus.PENDING, EnquiryStatus.CANCELLED):
            raise InvalidTransition(f"Enquiry {enquiry_id} changed while being rejected")
        e = get_enquiry(db, e.id)

    logger.info("Enquiry %s rejected", e.id)
    if notify:
        notifications.notify_cancelled(notify, e, e.slot)
    return e


def cancel_confirmed(db: Session, enquiry_id: int, notify: Notifier | None = None) -> Enquiry:
    """confirmed -> cancelled, then the slot is reopened."""
    with store_guard(db, "cancel confirmed enquiry"):
        e = get_enquiry(db, enquiry_id)
        _require(e, EnquiryStatus.CONFIRMED, EnquiryStatus.CANCELLED)
        if not _move(db, e.id, EnquiryStatus.CONFIRMED, EnquiryStatus.CANCELLED):
            raise InvalidTransition(f"Enquiry {enquiry_id} changed while being cancelled")

        reopened = False
        if e.time_slot_id is not None:
            reopened = _reopen_slot(db, e.time_slot_id)
        e = get_enquiry(db, e.id)

    logger.info("Confirmed enquiry %s cancelled (slot %s reopened: %s)", e.id, e.time_slot_id, reopened)
    if notify:
        notifications.notify_cancelled(notify, e, e.slot)
    return e


def complete(db: Session, enquiry_id: int) -> Enquiry:
    """confirmed -> completed. The slot stays consumed."""
    with store_guard(db, "complete enquiry"):
        e = get_enquiry(db, enquiry_id)
        _require(e, EnquiryStatus.CONFIRMED, EnquiryStatus.COMPLETED)
        if not _move(db, e.id, EnquiryStatus.CONFIRMED, EnquiryStatus.COMPLETED):
            raise InvalidTransition(f"Enquiry {enquiry_id} changed while being completed")
        e = get_enquiry(db, e.id)

    logger.info("Enquiry %s completed", e.id)
    return e


def cascade_cancel(db: Session, slot_id: int, notify: Notifier | None = None) -> int:
    """
    Cancels pending enquiries left on a reserved slot, e.g. after a
    confirmation that failed half way. Idempotent; no-op on an open slot.
    """
    with store_guard(db, "cascade-cancel slot"):
        slot = get_slot(db, slot_id)
        if slot.is_available:
            return 0
        cancelled = _cancel_pending_on_slot(db, slot.id)

    if cancelled:
        logger.info("Cascade on slot %s cancelled %d pending enquiry(ies)", slot.id, len(cancelled))
    if notify:
        for rival in cancelled:
            notifications.notify_cancelled(notify, rival, slot, slot_taken=True)
    return len(cancelled)


def set_slot_availability(db: Session, slot_id: int, available: bool) -> TimeSlot:
    """
    Manual staff override. Withdrawing is always allowed; reopening a slot
    held by a confirmed enquiry is refused (cancel the enquiry instead).
    """
    with store_guard(db, "update slot availability"):
        slot = get_slot(db, slot_id)
        if available:
            holder = _confirmed_holder(db, slot.id)
            if holder is not None:
                raise SlotInUse(
                    f"Time slot {slot.id} is held by confirmed enquiry {holder}: cancel it to reopen the slot"
                )
        conditional_update(db, db.query(TimeSlot).filter(TimeSlot.id == slot.id), {"is_available": available})
        slot = get_slot(db, slot_id)

    logger.info("Slot %s availability set to %s by staff", slot.id, available)
    return slot


def release_slot_enquiries(db: Session, slot_id: int, notify: Notifier | None = None) -> int:
    """
    Prepares a slot for deletion: refuses while a confirmed enquiry holds it,
    cancels pending ones and detaches the rest. Returns the cancelled count.
    """
    with store_guard(db, "release slot enquiries"):
        slot = get_slot(db, slot_id)
        holder = _confirmed_holder(db, slot.id)
        if holder is not None:
            raise SlotInUse(f"Time slot {slot.id} is held by confirmed enquiry {holder}")

        cancelled = _cancel_pending_on_slot(db, slot.id)
        conditional_update(
            db,
            db.query(Enquiry).filter(Enquiry.time_slot_id == slot.id),
            {"time_slot_id": None},
        )

    if notify:
        for e in cancelled:
            notifications.notify_cancelled(notify, e, slot)
    return len(cancelled)


def void_if_slot_reserved(db: Session, enquiry_id: int) -> bool:
    """
    Cancels a still-pending enquiry whose slot has been reserved meanwhile.
    Closes the window between a submission's slot check and its insert.
    True when the enquiry ended up cancelled, here or by a confirmation cascade.
    """
    with store_guard(db, "re-check enquiry slot"):
        e = get_enquiry(db, enquiry_id)
        if e.time_slot_id is None:
            return False
        slot = get_slot(db, e.time_slot_id)
        if slot.is_available or e.status in (EnquiryStatus.CONFIRMED, EnquiryStatus.COMPLETED):
            return False
        if e.status == EnquiryStatus.PENDING and _move(db, e.id, EnquiryStatus.PENDING, EnquiryStatus.CANCELLED):
            return True
        return get_enquiry(db, e.id).status == EnquiryStatus.CANCELLED
