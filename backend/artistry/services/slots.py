# backend/artistry/services/slots.py
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from ..config import settings
from ..core.errors import NotFound, SlotOverlap, ValidationError
from ..models.blocked_date import BlockedDate
from ..models.slot import TimeSlot
from . import confirmation
from .notifications import Notifier
from .store import store_guard

logger = logging.getLogger(__name__)


@dataclass
class BulkResult:
    created: int = 0
    skipped: int = 0
    slots: list[TimeSlot] = field(default_factory=list)


# -----------------------------------------
# Helpers
# -----------------------------------------
def _overlaps(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    # half-open: 09:00-10:30 and 10:30-12:00 don't overlap
    return a_start < b_end and b_start < a_end


def parse_template(raw: str) -> list[time]:
    """'09:00,11:00' -> [time(9), time(11)], sorted and de-duplicated."""
    out = set()
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            out.add(datetime.strptime(part, "%H:%M").time())
        except ValueError:
            raise ValueError(f"Invalid SLOT_TEMPLATE entry: {part!r}") from None
    if not out:
        raise ValueError("SLOT_TEMPLATE is empty")
    return sorted(out)


def slot_duration(service_name: str | None) -> int:
    """
    Minutes per generated slot. Long services (LONG_SERVICE_KEYWORDS,
    plain case-insensitive substring match) get LONG_SERVICE_MINUTES.
    """
    name = (service_name or "").lower()
    keywords = [k.strip().lower() for k in settings.LONG_SERVICE_KEYWORDS.split(",") if k.strip()]
    if any(k in name for k in keywords):
        return settings.LONG_SERVICE_MINUTES
    return settings.DEFAULT_SERVICE_MINUTES


def is_blocked(db: Session, day: date) -> bool:
    return db.query(BlockedDate.id).filter(BlockedDate.date == day).first() is not None


# -----------------------------------------
# Slot Query Service
# -----------------------------------------
def available_slots(db: Session, day: date) -> list[TimeSlot]:
    """Bookable slots on `day` ordered by start time. Empty on blocked dates."""
    with store_guard(db, "list available slots"):
        if is_blocked(db, day):
            return []
        return (
            db.query(TimeSlot)
            .filter(TimeSlot.slot_date == day, TimeSlot.is_available == True)
            .order_by(TimeSlot.start_time.asc())
            .all()
        )


def list_slots(db: Session, start: date | None = None, end: date | None = None) -> list[TimeSlot]:
    with store_guard(db, "list slots"):
        q = db.query(TimeSlot)
        if start:
            q = q.filter(TimeSlot.slot_date >= start)
        if end:
            q = q.filter(TimeSlot.slot_date <= end)
        return q.order_by(TimeSlot.slot_date.asc(), TimeSlot.start_time.asc()).all()


# -----------------------------------------
# Slot management (staff)
# -----------------------------------------
def create_slot(db: Session, day: date, start: time, end: time) -> TimeSlot:
    if start >= end:
        raise ValidationError("End time must be after start time", fields=["end_time"])

    with store_guard(db, "create slot"):
        existing = db.query(TimeSlot).filter(TimeSlot.slot_date == day).all()
        for s in existing:
            if _overlaps(start, end, s.start_time, s.end_time):
                raise SlotOverlap(
                    f"Overlaps slot {s.id} ({s.start_time.strftime('%H:%M')}–{s.end_time.strftime('%H:%M')})",
                    fields=["start_time", "end_time"],
                )

        slot = TimeSlot(slot_date=day, start_time=start, end_time=end, is_available=True)
        db.add(slot)
        db.commit()
        db.refresh(slot)

    logger.info("Slot %s created: %s %s-%s", slot.id, day, start, end)
    return slot


def generate_slots(
    db: Session,
    start_date: date,
    end_date: date,
    service_name: str | None = None,
    template: list[time] | None = None,
) -> BulkResult:
    """
    Creates one slot per template time for each day in [start_date, end_date].
    Candidates that overlap an existing slot, cross midnight or fall on a
    blocked date are skipped instead of failing the whole batch.
    """
    if end_date < start_date:
        raise ValidationError("End date must not be before start date", fields=["end_date"])
    days = (end_date - start_date).days + 1
    if days > settings.SLOT_BULK_MAX_DAYS:
        raise ValidationError(
            f"Range too long: {days} days (max {settings.SLOT_BULK_MAX_DAYS})",
            fields=["end_date"],
        )

    times = template or parse_template(settings.SLOT_TEMPLATE)
    step = timedelta(minutes=slot_duration(service_name))
    result = BulkResult()

    with store_guard(db, "generate slots"):
        blocked = {
            row[0]
            for row in db.query(BlockedDate.date)
            .filter(BlockedDate.date >= start_date, BlockedDate.date <= end_date)
            .all()
        }
        existing: dict[date, list[tuple[time, time]]] = {}
        for row in (
            db.query(TimeSlot.slot_date, TimeSlot.start_time, TimeSlot.end_time)
            .filter(TimeSlot.slot_date >= start_date, TimeSlot.slot_date <= end_date)
            .all()
        ):
            existing.setdefault(row[0], []).append((row[1], row[2]))

        to_insert: list[TimeSlot] = []
        for offset in range(days):
            day = start_date + timedelta(days=offset)
            if day in blocked:
                result.skipped += len(times)
                continue

            taken = existing.setdefault(day, [])
            for st in times:
                end_dt = datetime.combine(day, st) + step
                if end_dt.date() != day:
                    result.skipped += 1
                    continue
                et = end_dt.time()
                if any(_overlaps(st, et, a, b) for a, b in taken):
                    result.skipped += 1
                    continue
                taken.append((st, et))
                to_insert.append(TimeSlot(slot_date=day, start_time=st, end_time=et, is_available=True))

        if to_insert:
            db.add_all(to_insert)
            db.commit()

    result.created = len(to_insert)
    result.slots = to_insert
    logger.info(
        "Bulk slots %s..%s (%s min): created=%d skipped=%d",
        start_date, end_date, int(step.total_seconds() // 60), result.created, result.skipped,
    )
    return result


def toggle_availability(db: Session, slot_id: int, available: bool) -> TimeSlot:
    return confirmation.set_slot_availability(db, slot_id, available)


def delete_slot(db: Session, slot_id: int, notify: Notifier | None = None) -> int:
    """
    Deletes a slot. Refused with SlotInUse while a confirmed enquiry holds it;
    pending enquiries on it are cancelled first. Returns that count.
    """
    cancelled = confirmation.release_slot_enquiries(db, slot_id, notify=notify)
    with store_guard(db, "delete slot"):
        deleted = (
            db.query(TimeSlot)
            .filter(TimeSlot.id == slot_id)
            .delete(synchronize_session=False)
        )
        db.commit()
        db.expire_all()
    if not deleted:
        raise NotFound(f"Time slot {slot_id} not found")
    logger.info("Slot %s deleted (%d pending enquiry(ies) cancelled)", slot_id, cancelled)
    return cancelled


# -----------------------------------------
# Blocked dates
# -----------------------------------------
def block_dates(db: Session, start: date, end: date | None = None, reason: str | None = None) -> list[BlockedDate]:
    """One row per date in [start, end]; dates already blocked are left as they are."""
    end = end or start
    if end < start:
        raise ValidationError("End date must not be before start date", fields=["end_date"])
    days = (end - start).days + 1
    if days > settings.SLOT_BULK_MAX_DAYS:
        raise ValidationError(
            f"Range too long: {days} days (max {settings.SLOT_BULK_MAX_DAYS})",
            fields=["end_date"],
        )

    reason = (reason or "").strip() or None
    with store_guard(db, "block dates"):
        already = {
            row[0]
            for row in db.query(BlockedDate.date)
            .filter(BlockedDate.date >= start, BlockedDate.date <= end)
            .all()
        }
        rows = [
            BlockedDate(date=start + timedelta(days=i), reason=reason)
            for i in range(days)
            if start + timedelta(days=i) not in already
        ]
        if rows:
            db.add_all(rows)
            db.commit()

    logger.info("Blocked %d date(s) %s..%s", len(rows), start, end)
    return rows


def list_blocked_dates(db: Session, start: date | None = None) -> list[BlockedDate]:
    with store_guard(db, "list blocked dates"):
        q = db.query(BlockedDate)
        if start:
            q = q.filter(BlockedDate.date >= start)
        return q.order_by(BlockedDate.date.asc()).all()


def unblock_date(db: Session, blocked_id: int) -> None:
    with store_guard(db, "unblock date"):
        deleted = db.query(BlockedDate).filter(BlockedDate.id == blocked_id).delete(synchronize_session=False)
        db.commit()
    if not deleted:
        raise NotFound(f"Blocked date {blocked_id} not found")
