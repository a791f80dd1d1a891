# backend/modules/shift_pool/tasks/expiry_tasks.py

"""
Background sweeps for the shift pool.

Expires overdue claims, offers and swap requests and flushes notification
digests for users whose quiet hours have ended. Every sweep is a set of
conditional updates, so an overlapping or repeated run changes nothing.
"""

import logging
import time
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from core.clock import Clock, utc_now
from core.config import Settings, get_settings
from core.database import SessionLocal, load_models
from core.exceptions import TransientStoreFailure
from core.logging_config import configure_logging
from core.redis_client import get_redis_client
from modules.notifications.services import ChannelRegistry, NotificationCache, NotificationPipeline
from ..services.claim_resolution_service import ClaimResolutionEngine
from ..services.shift_swap_service import ShiftSwapService

logger = logging.getLogger(__name__)


def run_expiry_sweep(db: Session, notifier=None, clock: Optional[Clock] = None) -> Dict[str, int]:
    """Expire claims, offers and swaps that are past their deadline"""
    clock = clock or utc_now
    now = clock()
    result = ClaimResolutionEngine(db, notifier=notifier, clock=clock).expire_stale(now)
    result["swaps_expired"] = ShiftSwapService(db, notifier=notifier, clock=clock).expire_stale(now)
    return result


class ShiftPoolScheduler:
    """Runs the expiry sweep and the digest flush on fixed intervals"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Optional[Clock] = None,
    ):
        load_models()
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.clock = clock or utc_now
        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.expiry_job_id = "shift_pool_expiry_sweep"
        self.digest_job_id = "notification_digest_flush"
        self.redis_client = None
        self.channels = None
        self.is_running = False

    def start(self):
        if self.is_running:
            logger.warning("Shift pool scheduler already running")
            return

        self.redis_client = get_redis_client(self.settings)
        self.channels = ChannelRegistry.from_settings(self.settings)

        self.scheduler.add_job(
            func=self.expiry_task,
            trigger=IntervalTrigger(minutes=self.settings.expiry_sweep_interval_minutes),
            id=self.expiry_job_id,
            name="Shift pool expiry sweep",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            func=self.digest_task,
            trigger=IntervalTrigger(minutes=self.settings.digest_flush_interval_minutes),
            id=self.digest_job_id,
            name="Notification digest flush",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self.is_running = True
        logger.info(
            f"Shift pool scheduler started (expiry every {self.settings.expiry_sweep_interval_minutes} min, "
            f"digests every {self.settings.digest_flush_interval_minutes} min)"
        )

    def stop(self):
        if not self.is_running:
            return
        try:
            self.scheduler.shutdown(wait=True)
        except RuntimeError as e:
            logger.warning(f"Scheduler already stopped: {e}")
        self.is_running = False

        if self.channels is not None:
            self.channels.close()
        if self.redis_client is not None:
            self.redis_client.close()
        logger.info("Shift pool scheduler stopped")

    def _pipeline(self, db: Session) -> NotificationPipeline:
        cache = NotificationCache(self.redis_client, key_prefix=self.settings.redis_key_prefix)
        return NotificationPipeline(db, cache, self.channels, clock=self.clock, settings=self.settings)

    def expiry_task(self):
        db = self.session_factory()
        try:
            result = run_expiry_sweep(db, notifier=self._pipeline(db), clock=self.clock)
            logger.debug(f"Expiry sweep finished: {result}")
        except TransientStoreFailure as e:
            logger.warning(f"Expiry sweep hit a store conflict, will retry next run: {e.message}")
        except Exception as e:
            logger.error(f"Expiry sweep failed: {e}", exc_info=True)
        finally:
            db.close()

    def digest_task(self):
        db = self.session_factory()
        try:
            flushed = self._pipeline(db).flush_all_batches()
            if flushed:
                logger.info(f"Flushed {flushed} notification digest(s)")
        except TransientStoreFailure as e:
            logger.warning(f"Digest flush hit a store failure, will retry next run: {e.message}")
        except Exception as e:
            logger.error(f"Digest flush failed: {e}", exc_info=True)
        finally:
            db.close()


def main():
    """Run the sweeps in the foreground until interrupted"""
    configure_logging()
    scheduler = ShiftPoolScheduler()
    scheduler.start()
    try:
        while True:
            time.sleep(60)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down shift pool scheduler")
    finally:
        scheduler.stop()


if __name__ == "__main__":
    main()
