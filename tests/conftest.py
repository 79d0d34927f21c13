import pytest

from factories import InMemoryScheduleStore
from schedsync.core.config import settings as base_settings
from schedsync.services.sync_service import ScheduleSyncService


@pytest.fixture()
def test_settings():
    return base_settings.model_copy(update={
        "sync_retry_attempts": 3,
        "sync_retry_backoff_seconds": 0.0,
        "sync_cas_attempts": 3,
    })


@pytest.fixture()
def store():
    return InMemoryScheduleStore()


@pytest.fixture()
def service(store, test_settings):
    return ScheduleSyncService(store, test_settings)
