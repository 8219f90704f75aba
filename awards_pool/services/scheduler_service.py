"""
Awards Pool background scheduler

Snapshots market odds on a fixed interval (upgrading stored prediction odds
after each run) and polls settled markets for winners using APScheduler.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from awards_pool import db

logger = logging.getLogger(__name__)


def _empty_stats():
    return {
        "last_sync": None,
        "total_syncs": 0,
        "successful_syncs": 0,
        "failed_syncs": 0,
        "last_error": None,
        "snapshots_created": 0,
        "winners_detected": 0,
    }


class SchedulerService:
    """Manages background odds snapshots and winner detection"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.odds_sync = None
        self.is_running = False
        self.sync_stats = _empty_stats()

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        from awards_pool.services.odds_sync import OddsSync

        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        with app.app_context():
            self.odds_sync = OddsSync()

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        self.scheduler.remove_all_jobs()
        self._add_core_jobs()
        self.scheduler.start()
        self.is_running = True

        logger.info("Scheduler started successfully")

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Scheduler stopped")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        config = self.app.config

        self.scheduler.add_job(
            func=self._snapshot_odds,
            trigger=IntervalTrigger(minutes=config.get("ODDS_SNAPSHOT_INTERVAL_MINUTES", 10)),
            id="snapshot_odds",
            name="Snapshot Market Odds",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=120,
        )

        self.scheduler.add_job(
            func=self._detect_winners,
            trigger=IntervalTrigger(minutes=config.get("WINNER_CHECK_INTERVAL_MINUTES", 5)),
            id="detect_winners",
            name="Detect Winners From Settled Markets",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

        logger.info("Core scheduled jobs added")

    def _year(self):
        return self.app.config.get("POOL_YEAR") or datetime.now(timezone.utc).year

    def _snapshot_odds(self):
        with self.app.app_context():
            try:
                stats = self.odds_sync.create_snapshots(self._year())
                self._update_stats(True, snapshots=stats["snapshots"])
            except Exception as e:
                db.session.rollback()
                self._update_stats(False, error=e)
                logger.error(f"Error in odds snapshot job: {e}", exc_info=True)
            finally:
                db.session.remove()

    def _detect_winners(self):
        with self.app.app_context():
            try:
                stats = self.odds_sync.detect_winners(self._year())
                self._update_stats(True, winners=stats["detected"])
            except Exception as e:
                db.session.rollback()
                self._update_stats(False, error=e)
                logger.error(f"Error in winner detection job: {e}", exc_info=True)
            finally:
                db.session.remove()

    def _update_stats(self, success, snapshots=0, winners=0, error=None):
        """Update sync statistics"""
        self.sync_stats["last_sync"] = datetime.now(timezone.utc)
        self.sync_stats["total_syncs"] += 1

        if success:
            self.sync_stats["successful_syncs"] += 1
            self.sync_stats["snapshots_created"] += snapshots
            self.sync_stats["winners_detected"] += winners
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_syncs"] += 1
            self.sync_stats["last_error"] = str(error) if error else None

        if self.sync_stats["total_syncs"] > 10000:
            last_sync = self.sync_stats["last_sync"]
            self.sync_stats = _empty_stats()
            self.sync_stats["last_sync"] = last_sync

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.sync_stats)
        if stats["last_sync"]:
            stats["last_sync"] = stats["last_sync"].isoformat()

        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_sync(self, sync_type="odds"):
        """Manually trigger a job; returns (success, message)"""
        jobs = {"odds": self._snapshot_odds, "winners": self._detect_winners}
        if sync_type not in jobs:
            return False, f"Unknown sync type: {sync_type}"

        jobs[sync_type]()
        if self.sync_stats["last_error"]:
            return False, f"Manual {sync_type} sync failed: {self.sync_stats['last_error']}"
        return True, f"Manual {sync_type} sync completed"


# Global scheduler instance
scheduler_service = SchedulerService()
