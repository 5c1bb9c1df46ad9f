# backend/artistry/services/notifications.py
"""
Email notifications for the enquiry lifecycle.

Every send is best-effort: errors are logged here and never reach the
caller, so a mail outage can't fail or roll back a submission/confirmation.
"""
import logging
import re
from html import escape
from typing import Callable

from ..config import settings
from ..models.enquiry import Enquiry
from ..models.slot import TimeSlot
from . import email_gmail, email_resend

logger = logging.getLogger(__name__)

# (to, subject, html)
Notifier = Callable[[str, str, str], None]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_email(value: str) -> bool:
    return bool(_EMAIL_RE.match((value or "").strip()))


def send_email(to: str, subject: str, html: str) -> None:
    """Default notifier: dispatches on EMAIL_PROVIDER."""
    provider = (settings.EMAIL_PROVIDER or "log").strip().lower()
    if provider == "gmail":
        email_gmail.send_email_html(to, subject, html)
    elif provider == "resend":
        email_resend.send_email_html(to, subject, html)
    else:
        # dev: nothing leaves the machine
        logger.info("[%s] email to %s | %s", provider, to, subject)
        logger.debug("%s", html)


def parse_staff_emails(raw: str | None) -> list[str]:
    """
    Reads a CSV / ; / newline list of addresses, drops malformed ones and
    de-duplicates case-insensitively keeping the first spelling.
    """
    raw = (raw or "").strip()
    if not raw:
        return []

    emails = []
    seen = set()
    for p in re.split(r"[,\n;]+", raw):
        e = p.strip()
        if not e or not is_email(e):
            continue
        key = e.lower()
        if key in seen:
            continue
        seen.add(key)
        emails.append(e)
    return emails


def staff_emails() -> list[str]:
    return parse_staff_emails(settings.STAFF_EMAILS)


def send_to_many(notify: Notifier, addresses: list[str], subject: str, html: str) -> int:
    """Tolerant fan-out with case-insensitive de-dup. Returns how many sends succeeded."""
    seen = set()
    sent = 0
    for a in addresses or []:
        key = (a or "").strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        try:
            notify(a.strip(), subject, html)
            sent += 1
        except Exception:
            logger.exception("Email to %s failed (%s)", a, subject)
    return sent


# -----------------------------------------
# Templates
# -----------------------------------------
def _fmt_slot(s: TimeSlot | None) -> str:
    if not s:
        return "Not specified"
    return f"{s.slot_date.strftime('%A %d %B %Y')} • {s.start_time.strftime('%H:%M')}–{s.end_time.strftime('%H:%M')}"


def _wrap(title: str, body: str) -> str:
    return f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;color:#1f2937">
      <div style="background:#be185d;padding:20px;border-radius:8px 8px 0 0">
        <h2 style="color:white;margin:0;text-align:center">{escape(title)}</h2>
      </div>
      <div style="background:#f9f9f9;padding:30px;border-radius:0 0 8px 8px">
        {body}
      </div>
      <p style="color:#6b7280;font-size:12px;text-align:center">{escape(settings.BUSINESS_NAME)}</p>
    </div>
    """


def _details(e: Enquiry, slot: TimeSlot | None) -> str:
    lines = [
        f"<p><b>Service:</b> {escape(e.service_option)}</p>",
        f"<p><b>Slot:</b> {escape(_fmt_slot(slot))}</p>",
    ]
    return "\n".join(lines)


def enquiry_received_client(e: Enquiry, slot: TimeSlot | None) -> tuple[str, str]:
    subject = f"Thank you for your booking enquiry - {settings.BUSINESS_NAME}"
    body = f"""
        <p>Hi {escape(e.client_name)},</p>
        <p>thank you for your enquiry. We'll review it and get back to you within 24 hours
        to confirm your appointment.</p>
        {_details(e, slot)}
    """
    return subject, _wrap(settings.BUSINESS_NAME, body)


def enquiry_received_staff(e: Enquiry, slot: TimeSlot | None) -> tuple[str, str]:
    subject = f"New booking enquiry: {e.client_name} - {e.service_option}"
    notes = f"<p><b>Notes:</b> {escape(e.notes)}</p>" if e.notes else ""
    body = f"""
        <p><b>Name:</b> {escape(e.client_name)}</p>
        <p><b>Email:</b> <a href="mailto:{escape(e.client_email)}">{escape(e.client_email)}</a></p>
        <p><b>Phone:</b> {escape(e.client_phone or 'Not provided')}</p>
        {_details(e, slot)}
        {notes}
        <p>Confirm or reject it from the admin panel.</p>
    """
    return subject, _wrap("New booking enquiry", body)


def enquiry_confirmed_client(e: Enquiry, slot: TimeSlot | None) -> tuple[str, str]:
    subject = f"Your appointment is confirmed - {settings.BUSINESS_NAME}"
    body = f"""
        <p>Hi {escape(e.client_name)},</p>
        <p>your appointment has been <b>confirmed</b>.</p>
        {_details(e, slot)}
    """
    return subject, _wrap(settings.BUSINESS_NAME, body)


def enquiry_cancelled_client(e: Enquiry, slot: TimeSlot | None, slot_taken: bool = False) -> tuple[str, str]:
    subject = f"Update on your booking enquiry - {settings.BUSINESS_NAME}"
    if slot_taken:
        reason = "unfortunately the time you asked for has just been booked. Feel free to pick another slot."
    else:
        reason = "unfortunately we can't go ahead with this appointment."
    body = f"""
        <p>Hi {escape(e.client_name)},</p>
        <p>{reason}</p>
        {_details(e, slot)}
    """
    return subject, _wrap(settings.BUSINESS_NAME, body)


# -----------------------------------------
# Lifecycle hooks
# -----------------------------------------
def notify_enquiry_received(notify: Notifier, e: Enquiry, slot: TimeSlot | None) -> None:
    subject, html = enquiry_received_client(e, slot)
    send_to_many(notify, [e.client_email], subject, html)

    to_staff = staff_emails()
    if not to_staff:
        logger.warning("STAFF_EMAILS empty: no staff alert for enquiry %s", e.id)
        return
    subject, html = enquiry_received_staff(e, slot)
    send_to_many(notify, to_staff, subject, html)


def notify_confirmed(notify: Notifier, e: Enquiry, slot: TimeSlot | None) -> None:
    subject, html = enquiry_confirmed_client(e, slot)
    send_to_many(notify, [e.client_email], subject, html)


def notify_cancelled(notify: Notifier, e: Enquiry, slot: TimeSlot | None, slot_taken: bool = False) -> None:
    subject, html = enquiry_cancelled_client(e, slot, slot_taken=slot_taken)
    send_to_many(notify, [e.client_email], subject, html)
