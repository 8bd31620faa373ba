# motorbid/scheduler.py
"""Periodic auction sweep.

`sweep_auctions` opens auctions whose start has passed and closes those whose
end has passed. Every step is idempotent, so several instances may run the
sweep at once, or a run may be repeated after a crash.
"""
from apscheduler.schedulers.background import BackgroundScheduler

from . import crud
from .config import SWEEP_INTERVAL_SECONDS
from .db import SessionLocal
from .errors import MarketError
from .utils import logger, utcnow

scheduler = BackgroundScheduler()


def sweep_auctions(now=None, session_factory=SessionLocal):
    now = now or utcnow()
    db = session_factory()
    changed = 0
    try:
        due = crud.due_auction_ids(db, now)
        for auction_id in due:
            try:
                _, transition = crud.advance_auction(db, auction_id, now)
            except MarketError as e:
                logger.warning("Could not advance auction %s: %s", auction_id, e)
                continue
            if transition.changed:
                changed += 1
    finally:
        db.close()
    if changed:
        logger.info("Sweep advanced %d of %d due auctions", changed, len(due))
    return changed


def start_scheduler():
    if scheduler.running:
        return scheduler
    scheduler.add_job(sweep_auctions, "interval", seconds=SWEEP_INTERVAL_SECONDS,
                      id="sweep_auctions", max_instances=1, coalesce=True, replace_existing=True)
    scheduler.start()
    logger.info("Scheduler started (sweep every %ss)", SWEEP_INTERVAL_SECONDS)
    return scheduler


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
