import secrets

from fastapi import Header, HTTPException, status

from .config import settings
from .services.notifications import Notifier, send_email


def require_admin(x_admin_key: str | None = Header(None)) -> None:
    """Admin panel guard. With no ADMIN_API_KEY set (dev) every call passes."""
    expected = settings.ADMIN_API_KEY
    if not expected:
        if settings.APP_ENV.lower() == "prod":
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="ADMIN_API_KEY not configured")
        return
    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")


def get_notifier() -> Notifier:
    return send_email
