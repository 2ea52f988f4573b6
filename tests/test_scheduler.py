from datetime import datetime, timedelta

from import_session import ImportSessionRegistry
from scheduler import SchedulerManager


def test_purge_job_discards_idle_sessions() -> None:
    registry = ImportSessionRegistry()
    idle = registry.create(household_id=1)
    active = registry.create(household_id=1)
    manager = SchedulerManager(registry)
    idle.touched_at = datetime.utcnow() - manager.max_idle - timedelta(minutes=1)

    assert manager._run_job("test") == 1
    assert idle.closed
    assert not active.closed
    assert len(registry) == 1
    assert not manager.scheduler.running
