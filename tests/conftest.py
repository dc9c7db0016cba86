import os
import random
from datetime import datetime, timezone

import pytest

from mneme.application.config import SchedulerSettings
from mneme.application.scheduling.scheduler import ReviewScheduler
from mneme.domain.schedule.models import Algorithm
from mneme.infrastructure.clock import FixedClock

# Sunday 10 March 2024, mid-morning UTC.
NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def mock_home(tmp_path_factory, monkeypatch):
    """Mocks Path.home() to point to a temp dir and clears MNEME_* variables."""
    home = tmp_path_factory.mktemp("home")

    # Isolate config files and data from the real home directory
    monkeypatch.setenv("HOME", str(home))
    for key in list(os.environ):
        if key.startswith("MNEME_"):
            monkeypatch.delenv(key)
    return home


@pytest.fixture
def mock_vault(tmp_path):
    """Creates a temporary directory structure mimicking a vault."""
    d = tmp_path / "MyVault"
    d.mkdir()
    return d


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def make_settings(tmp_path):
    """Settings factory with deterministic FSRS (no fuzz) and a temp data file."""

    def _make(**overrides) -> SchedulerSettings:
        fsrs = {"enable_fuzz": False, **overrides.pop("fsrs", {})}
        overrides.setdefault("data_path", tmp_path / "data.json")
        return SchedulerSettings(fsrs=fsrs, **overrides)

    return _make


@pytest.fixture
def make_scheduler(make_settings, clock):
    def _make(algorithm: Algorithm = Algorithm.SM2, **overrides) -> ReviewScheduler:
        settings = make_settings(default_scheduling_algorithm=algorithm, **overrides)
        return ReviewScheduler(settings, clock, rng=random.Random(7))

    return _make


@pytest.fixture
def sm2_scheduler(make_scheduler):
    return make_scheduler(Algorithm.SM2)


@pytest.fixture
def fsrs_scheduler(make_scheduler):
    return make_scheduler(Algorithm.FSRS)
