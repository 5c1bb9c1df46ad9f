# backend/artistry/services/email_gmail.py
import base64
from email.mime.text import MIMEText

from googleapiclient.discovery import build
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from ..config import settings


GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.send"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


def gmail_configured() -> bool:
    return bool(
        settings.GOOGLE_CLIENT_ID
        and settings.GOOGLE_CLIENT_SECRET
        and settings.GOOGLE_REFRESH_TOKEN
        and settings.EMAIL_FROM
    )


def _gmail_service():
    """
    Builds the Gmail client from an 'installed app' OAuth2 refresh token.
    Needs GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REFRESH_TOKEN.
    """
    creds = Credentials(
        token=None,
        refresh_token=settings.GOOGLE_REFRESH_TOKEN,
        token_uri=TOKEN_URI,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        scopes=GMAIL_SCOPES,
    )
    # refresh now to get a valid access token
    creds.refresh(Request())

    # cache_discovery=False avoids warnings on servers
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def build_raw_message(to: str, subject: str, html: str) -> str:
    msg = MIMEText(html, "html", "utf-8")
    msg["to"] = to
    msg["from"] = settings.EMAIL_FROM or ""
    msg["subject"] = subject
    # Gmail wants URL-safe base64
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("utf-8")


def send_email_html(to: str, subject: str, html: str) -> None:
    """Sends an HTML mail through the Gmail API. Raises on any API error."""
    if not gmail_configured():
        raise RuntimeError("Gmail not configured (GOOGLE_* / EMAIL_FROM missing)")

    raw = build_raw_message(to, subject, html)
    svc = _gmail_service()
    svc.users().messages().send(userId="me", body={"raw": raw}).execute()
