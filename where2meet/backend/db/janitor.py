"""Mark events past their TTL as EXPIRED.

Reads already treat such events as missing; this only makes the stored
status agree. Run periodically with ``python -m where2meet.backend.db.janitor``.
"""
import logging
from where2meet.backend.core.config import settings
from where2meet.backend.core.logging import setup_logging
from where2meet.backend.db.session import SessionLocal
from where2meet.backend.services.lifecycle import EventLifecycleService

logger = logging.getLogger(__name__)


def run() -> int:
    """Expire stale events. Returns the number of events updated."""
    db = SessionLocal()
    try:
        return EventLifecycleService().expire_events(db)
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging(settings.log_level)
    logger.info("Expired %s events", run())
