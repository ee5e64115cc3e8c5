"""
Background worker scheduler tests
"""
import asyncio
from datetime import datetime, timedelta, timezone

from app.workers.scheduler import WorkerScheduler


class StubProcessor:
    def __init__(self, result=None, error=None):
        self.calls = 0
        self.result = result or {"success": True, "message": "0 task(s) processed"}
        self.error = error

    async def process_due_tasks(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


class StubSyncEngine:
    def __init__(self):
        self.calls = 0

    async def sync_all_stores(self):
        self.calls += 1
        return {"success": True, "stores": 0, "message": "Synced 0/0 store(s)"}


def make_scheduler(processor=None):
    return WorkerScheduler(processor=processor or StubProcessor(), sync_engine=StubSyncEngine())


def test_every_enabled_worker_is_due_on_first_tick():
    scheduler = make_scheduler()
    assert scheduler.due_workers(datetime.now(timezone.utc)) == ["submission_outbox", "supplier_sync"]


def test_worker_is_not_due_again_before_its_interval():
    scheduler = make_scheduler()
    asyncio.run(scheduler.run_worker("submission_outbox", scheduler.workers["submission_outbox"]))

    now = datetime.now(timezone.utc)
    assert "submission_outbox" not in scheduler.due_workers(now)
    later = now + timedelta(seconds=scheduler.workers["submission_outbox"]["interval"] + 1)
    assert "submission_outbox" in scheduler.due_workers(later)


def test_busy_or_disabled_workers_are_skipped():
    scheduler = make_scheduler()
    scheduler.workers["submission_outbox"]["busy"] = True
    scheduler.workers["supplier_sync"]["enabled"] = False
    assert scheduler.due_workers(datetime.now(timezone.utc)) == []


def test_crashing_worker_is_contained():
    processor = StubProcessor(error=RuntimeError("db gone"))
    scheduler = make_scheduler(processor)
    config = scheduler.workers["submission_outbox"]

    result = asyncio.run(scheduler.run_worker("submission_outbox", config))

    assert result["success"] is False
    assert "db gone" in result["message"]
    assert config["busy"] is False
    assert config["last_run"] is not None


def test_status_report():
    scheduler = make_scheduler()
    status = scheduler.get_worker_status()
    assert status["submission_outbox"]["status"] == "stopped"
    assert status["supplier_sync"]["last_run"] is None
