"""
Worker Scheduler Configuration

Registers and schedules the background workers: the supplier submission outbox pass and
the supplier catalog auto-sync.
"""

import logging
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

from app.config import settings
from app.services.supplier_submission import SubmissionProcessor
from app.services.sync_engine import SupplierSyncEngine

logger = logging.getLogger(__name__)


class WorkerScheduler:
    """Scheduler for running background workers at specified intervals."""

    def __init__(
        self,
        processor: Optional[SubmissionProcessor] = None,
        sync_engine: Optional[SupplierSyncEngine] = None,
    ):
        self.processor = processor or SubmissionProcessor()
        self.sync_engine = sync_engine or SupplierSyncEngine()
        self.workers = {
            "submission_outbox": {
                "func": self.processor.process_due_tasks,
                "interval": settings.SUBMISSION_POLL_INTERVAL,
                "last_run": None,
                "enabled": settings.SUBMISSION_POLL_INTERVAL > 0,
                "busy": False,
            },
            "supplier_sync": {
                "func": self.sync_engine.sync_all_stores,
                "interval": settings.SUPPLIER_SYNC_INTERVAL,
                "last_run": None,
                "enabled": settings.SUPPLIER_SYNC_INTERVAL > 0,
                "busy": False,
            },
        }
        self.running = False
        self._tasks: set = set()

    @property
    def tick_seconds(self) -> int:
        intervals = [w["interval"] for w in self.workers.values() if w["enabled"]]
        return max(1, min(intervals + [60]))

    async def run_worker(self, worker_name: str, worker_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a single worker and log results.

        Args:
            worker_name: Name of the worker
            worker_config: Worker configuration

        Returns:
            Worker result
        """
        worker_config["busy"] = True
        try:
            logger.debug("Starting worker: %s", worker_name)
            result = await worker_config["func"]()
            if result.get("success", False):
                logger.info("Worker %s completed: %s", worker_name, result.get("message", "No message"))
            else:
                logger.error("Worker %s failed: %s", worker_name, result.get("message", "Unknown error"))
            return result
        except Exception as e:
            logger.exception("Worker %s crashed: %s", worker_name, e)
            return {
                "success": False,
                "message": f"Worker crashed: {str(e)}",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        finally:
            worker_config["last_run"] = datetime.now(timezone.utc)
            worker_config["busy"] = False

    def due_workers(self, now: datetime) -> list[str]:
        due = []
        for worker_name, worker_config in self.workers.items():
            if not worker_config["enabled"] or worker_config["busy"]:
                continue
            last_run = worker_config["last_run"]
            if last_run is None or (now - last_run).total_seconds() >= worker_config["interval"]:
                due.append(worker_name)
        return due

    async def start_scheduler(self):
        """Start the background worker scheduler."""
        self.running = True
        logger.info("Worker scheduler started")

        while self.running:
            for worker_name in self.due_workers(datetime.now(timezone.utc)):
                task = asyncio.create_task(self.run_worker(worker_name, self.workers[worker_name]))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
            await asyncio.sleep(self.tick_seconds)

    def stop_scheduler(self):
        """Stop the background worker scheduler."""
        self.running = False
        logger.info("Worker scheduler stopped")

    def get_worker_status(self) -> Dict[str, Any]:
        """Get current status of all workers."""
        status = {}
        for worker_name, worker_config in self.workers.items():
            last_run = worker_config["last_run"]
            next_run = last_run + timedelta(seconds=worker_config["interval"]) if last_run else None
            status[worker_name] = {
                "enabled": worker_config["enabled"],
                "last_run": last_run.isoformat() if last_run else None,
                "next_run": next_run.isoformat() if next_run else None,
                "interval_seconds": worker_config["interval"],
                "status": ("busy" if worker_config["busy"] else "running") if self.running else "stopped",
            }
        return status


# Global scheduler instance
scheduler = WorkerScheduler()
_scheduler_task: Optional[asyncio.Task] = None


def start_background_workers():
    """Start the background worker scheduler."""
    global _scheduler_task
    if _scheduler_task is not None and not _scheduler_task.done():
        return
    _scheduler_task = asyncio.create_task(scheduler.start_scheduler())
    logger.info("Background workers started")


def stop_background_workers():
    """Stop the background worker scheduler."""
    scheduler.stop_scheduler()


def get_workers_status() -> Dict[str, Any]:
    """Get status of all background workers."""
    return scheduler.get_worker_status()
