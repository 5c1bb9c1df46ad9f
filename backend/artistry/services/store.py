# backend/artistry/services/store.py
import logging
from contextlib import contextmanager

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from ..core.errors import StoreUnavailable

logger = logging.getLogger(__name__)


@contextmanager
def store_guard(db: Session, action: str):
    """
    Runs a block of reads/writes against the session.
    Connection-level failures roll the session back and surface as
    StoreUnavailable; everything else propagates unchanged.
    """
    try:
        yield db
    except (OperationalError, InterfaceError, DisconnectionError) as e:
        db.rollback()
        logger.error("Store unavailable during %s: %s", action, e)
        raise StoreUnavailable(f"Database unavailable while trying to {action}") from e


def conditional_update(db: Session, query, patch: dict) -> int:
    """
    Compare-and-set: `query` carries the expected current state in its
    filters, so the UPDATE only hits rows still in that state.
    Commits and returns the number of rows that changed.
    """
    changed = query.update(patch, synchronize_session=False)
    db.commit()
    # bulk UPDATE bypasses the identity map
    db.expire_all()
    return changed
