from datetime import datetime, timedelta, timezone

import pytest

from mneme.application.scheduling.scheduler import ReviewScheduler
from mneme.application.stats.service import ScheduleStatsService
from mneme.domain.schedule.models import (
    FsrsCard,
    FsrsSchedule,
    FsrsState,
    SchedulerState,
    Sm2Schedule,
)

TODAY = datetime(2024, 3, 10, tzinfo=timezone.utc)


def _card(stability: float, reps: int, lapses: int, last_review: datetime) -> FsrsCard:
    return FsrsCard(
        stability=stability,
        difficulty=5.0,
        reps=reps,
        lapses=lapses,
        state=FsrsState.REVIEW,
        last_review=last_review,
    )


@pytest.fixture
def build_service(make_settings, clock):
    def _build(*schedules):
        state = SchedulerState(schedules={s.item_id: s for s in schedules})
        scheduler = ReviewScheduler(make_settings(), clock, state=state)
        return ScheduleStatsService(scheduler, clock)

    return _build


def test_forecast(build_service, now):
    service = build_service(
        Sm2Schedule(item_id="overdue.md", next_review_date=TODAY - timedelta(days=1)),
        Sm2Schedule(item_id="today.md", next_review_date=TODAY),
        FsrsSchedule(item_id="tonight.md", next_review_date=now + timedelta(hours=10)),
        Sm2Schedule(item_id="tomorrow.md", next_review_date=TODAY + timedelta(days=1)),
        Sm2Schedule(item_id="week.md", next_review_date=TODAY + timedelta(days=3)),
        Sm2Schedule(item_id="later.md", next_review_date=TODAY + timedelta(days=10)),
    )

    assert service.get_forecast() == {
        "overdue": 1,
        "today": 2,
        "tomorrow": 1,
        "this_week": 1,
        "later": 1,
    }


def test_forecast_as_of(build_service):
    service = build_service(Sm2Schedule(item_id="a.md", next_review_date=TODAY))
    forecast = service.get_forecast(as_of=TODAY - timedelta(days=1))
    assert forecast["tomorrow"] == 1


def test_enriched_stats_skips_unknown(build_service):
    service = build_service(Sm2Schedule(item_id="a.md", next_review_date=TODAY))

    stats = service.get_enriched_stats(["a.md", "ghost.md"])
    assert [s.item_id for s in stats] == ["a.md"]
    assert len(service.get_enriched_stats()) == 1


def test_get_struggling_items(build_service, now):
    service = build_service(
        FsrsSchedule(
            item_id="weak.md",
            next_review_date=now,
            card=_card(2.0, reps=2, lapses=0, last_review=now),
        ),
        FsrsSchedule(
            item_id="solid.md",
            next_review_date=now + timedelta(days=40),
            card=_card(50.0, reps=5, lapses=0, last_review=now - timedelta(days=1)),
        ),
        FsrsSchedule(
            item_id="lapsed.md",
            next_review_date=now,
            card=_card(40.0, reps=6, lapses=2, last_review=now),
        ),
        FsrsSchedule(item_id="fresh.md", next_review_date=now, card=FsrsCard()),
        Sm2Schedule(item_id="easefall.md", next_review_date=TODAY, ease=200, review_count=3),
        Sm2Schedule(item_id="newsm2.md", next_review_date=TODAY, ease=200, review_count=1),
    )

    struggling = service.get_struggling_items()
    assert sorted(s.item_id for s in struggling) == ["easefall.md", "lapsed.md", "weak.md"]


def test_struggling_thresholds_are_configurable(build_service, now):
    service = build_service(
        FsrsSchedule(
            item_id="weak.md",
            next_review_date=now,
            card=_card(2.0, reps=2, lapses=0, last_review=now),
        ),
    )
    assert service.get_struggling_items(stability_threshold=1.0) == []


def test_corrupt_card_does_not_break_stats(build_service, now):
    broken = FsrsCard(stability=0.0, difficulty=5.0, state=FsrsState.REVIEW, last_review=now)
    service = build_service(
        FsrsSchedule(item_id="broken.md", next_review_date=now, card=broken),
        Sm2Schedule(item_id="fine.md", next_review_date=TODAY),
    )

    stats = {s.item_id: s for s in service.get_enriched_stats()}
    assert stats["broken.md"].current_retrievability is None
    assert stats["fine.md"].ease == 250
    assert [s.item_id for s in service.get_struggling_items()] == []
