"""
Scheduler Factory
Centralizes the wiring from settings to a ready scheduler and its adapters.
"""

import random

from mneme.application.config import SchedulerSettings
from mneme.application.scheduling.scheduler import ReviewScheduler
from mneme.domain.schedule.models import SchedulerState
from mneme.domain.schedule.ports import Clock, ItemExistenceCheck, StateRepository
from mneme.infrastructure.adapters.json_store import JsonStateRepository
from mneme.infrastructure.adapters.vault import VaultItemCheck
from mneme.infrastructure.clock import SystemClock


def get_state_repository(settings: SchedulerSettings) -> StateRepository:
    """
    Returns the StateRepository for the configured data file.
    """
    return JsonStateRepository(settings.data_path, history_limit=settings.history_limit)


def get_existence_check(settings: SchedulerSettings) -> ItemExistenceCheck | None:
    """
    Returns a vault-backed existence check, or None when no vault is configured
    (every id is then accepted).
    """
    if settings.vault_root is None:
        return None
    return VaultItemCheck(settings.vault_root)


def build_scheduler(
    settings: SchedulerSettings,
    state: SchedulerState | None = None,
    clock: Clock | None = None,
    rng: random.Random | None = None,
) -> ReviewScheduler:
    """
    Returns a scheduler over ``state`` (default: loaded from the configured repository).
    """
    if state is None:
        state = get_state_repository(settings).load()
    return ReviewScheduler(
        settings=settings,
        clock=clock or SystemClock(),
        existence_check=get_existence_check(settings),
        state=state,
        rng=rng,
    )
