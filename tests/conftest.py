from __future__ import annotations

import random

import pytest

from warden.bulk.executor import BulkActionExecutor
from warden.bulk.policy import JitterPolicy, ProgressPolicy, RetryPolicy
from warden.bulk.service import JobService
from warden.services.stats import RuntimeStats
from warden.testing.fakes import (
    FakeAuthorization,
    FakePlatformClient,
    FakePresenceStore,
    FakeStatusSink,
    RecordingSleeper,
)

BOT_ID = 1
OPERATOR_ID = 500
GROUP_ID = 9000


@pytest.fixture
def sleeper() -> RecordingSleeper:
    return RecordingSleeper()


@pytest.fixture
def presence() -> FakePresenceStore:
    return FakePresenceStore()


@pytest.fixture
def platform() -> FakePlatformClient:
    return FakePlatformClient(self_id=BOT_ID)


@pytest.fixture
def auth() -> FakeAuthorization:
    return FakeAuthorization(operators={OPERATOR_ID})


@pytest.fixture
def sink() -> FakeStatusSink:
    return FakeStatusSink()


@pytest.fixture
def executor(sleeper: RecordingSleeper) -> BulkActionExecutor:
    return BulkActionExecutor(
        retry=RetryPolicy(attempts=4, base_delay=1.0, max_delay=30.0),
        jitter=JitterPolicy(0.35, 0.9),
        concurrency=3,
        sleep=sleeper,
        rng=random.Random(7),
    )


@pytest.fixture
def stats() -> RuntimeStats:
    return RuntimeStats()


@pytest.fixture
def service(presence, platform, auth, executor, stats) -> JobService:
    return JobService(
        presence=presence,
        platform=platform,
        auth=auth,
        executor=executor,
        progress_policy=ProgressPolicy(interval_seconds=5.0, batch_size=25),
        stats=stats,
        mute_duration_seconds=3600,
    )
