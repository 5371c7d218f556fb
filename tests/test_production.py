"""Tests for the phase-based production pipeline."""
from __future__ import annotations

import pytest

from studio_mogul.models import Genre, Movie, ProductionEventKind, ProjectStatus
from studio_mogul.production import (
    PHASE_ORDER,
    ProductionEventTable,
    ProductionPipeline,
    add_months,
    estimated_release,
    next_phase,
    overall_progress,
)
from studio_mogul.rng import DeterministicRNG


class NeutralRNG(DeterministicRNG):
    """No events fire and progress noise sits at zero."""

    def __init__(self) -> None:
        super().__init__(0)

    def chance(self, probability: float) -> bool:
        return False

    def uniform(self, a: float, b: float) -> float:
        return (a + b) / 2


class EventfulRNG(NeutralRNG):
    def chance(self, probability: float) -> bool:
        return True


def make_movie(**overrides):
    fields = dict(
        id="m1",
        script_id="s1",
        studio_id="player",
        title="Test Picture",
        genre=Genre.DRAMA,
        cast=["a1", "a2"],
        production_budget=2_000_000,
        quality=60,
        estimated_release_month=7,
        estimated_release_year=2003,
    )
    fields.update(overrides)
    return Movie(**fields)


def write_table(tmp_path, body: str):
    (tmp_path / "production_events.yaml").write_text(body, encoding="utf-8")
    return ProductionEventTable(tmp_path)


def test_phase_helpers():
    assert next_phase(ProjectStatus.PRE_PRODUCTION) == ProjectStatus.FILMING
    assert next_phase(ProjectStatus.RELEASED) == ProjectStatus.RELEASED
    assert overall_progress(ProjectStatus.PRE_PRODUCTION, 0) == 0
    assert overall_progress(ProjectStatus.FILMING, 50) == 35
    assert overall_progress(ProjectStatus.MARKETING, 0) == 90
    assert overall_progress(ProjectStatus.RELEASED, 0) == 100
    assert add_months(11, 2003, 3) == (2, 2004)
    assert estimated_release(1, 2003) == (7, 2003)
    assert estimated_release(9, 2003) == (3, 2004)


def test_unreleased_project_never_shows_full_progress():
    assert overall_progress(ProjectStatus.MARKETING, 98.0) == 99
    assert overall_progress(ProjectStatus.MARKETING, 100.0) == 99
    assert overall_progress(ProjectStatus.POST_PRODUCTION, 99.9) == 89


def test_short_marketing_month_stays_below_full_progress():
    class ShortMonthRNG(NeutralRNG):
        def uniform(self, a, b):
            return -2.0

    movie = make_movie(status=ProjectStatus.MARKETING, progress=90)

    step = ProductionPipeline().advance(movie, 6, 2003, ShortMonthRNG())

    assert step.movie.status == ProjectStatus.MARKETING
    assert step.movie.phase_progress == 98.0
    assert step.movie.progress == 99
    assert not step.released


def test_neutral_project_runs_nominal_schedule():
    pipeline = ProductionPipeline(event_chance=0.3)
    rng = NeutralRNG()
    movie = make_movie()
    statuses = []
    progress = []
    for month in range(1, 7):
        step = pipeline.advance(movie, month, 2003, rng)
        movie = step.movie
        statuses.append(movie.status)
        progress.append(movie.progress)

    assert statuses == [
        ProjectStatus.FILMING,
        ProjectStatus.FILMING,
        ProjectStatus.POST_PRODUCTION,
        ProjectStatus.POST_PRODUCTION,
        ProjectStatus.MARKETING,
        ProjectStatus.RELEASED,
    ]
    assert progress == [10, 35, 60, 75, 90, 100]
    assert movie.release_month == 6
    assert movie.release_year == 2003


def test_released_project_is_left_alone():
    pipeline = ProductionPipeline()
    movie = make_movie(status=ProjectStatus.RELEASED, progress=100, quality=71)

    step = pipeline.advance(movie, 3, 2004, DeterministicRNG(5))

    assert step.movie is movie
    assert step.event is None
    assert not step.phase_changed
    assert not step.released


@pytest.mark.parametrize("seed", range(10))
def test_progress_never_decreases(seed):
    pipeline = ProductionPipeline(event_chance=0.5)
    rng = DeterministicRNG(seed)
    movie = make_movie()
    last = movie.progress
    for month in range(1, 20):
        movie = pipeline.advance(movie, (month % 12) + 1, 2003, rng).movie
        assert last <= movie.progress <= 100
        assert movie.progress < 100 or movie.is_released
        assert 0 <= movie.quality <= 100
        last = movie.progress
    assert movie.status == ProjectStatus.RELEASED


def test_event_applies_quality_budget_and_delay(tmp_path):
    table = write_table(
        tmp_path,
        """
production_events:
  Filming:
    - {kind: negative, title: Weather Delays, description: Rain., quality_impact: -4, budget_impact: 200000, delay_months: 2}
""",
    )
    pipeline = ProductionPipeline(table, event_chance=1.0)
    movie = make_movie(
        status=ProjectStatus.FILMING,
        current_budget_spent=2_000_000,
        estimated_release_month=11,
        estimated_release_year=2003,
    )

    step = pipeline.advance(movie, 4, 2003, EventfulRNG())

    assert step.event is not None
    assert step.event.kind == ProductionEventKind.NEGATIVE
    assert step.movie.quality == 56
    assert step.movie.current_budget_spent == 2_200_000
    assert (step.movie.estimated_release_month, step.movie.estimated_release_year) == (1, 2004)
    assert step.movie.production_events == [step.event]
    assert movie.production_events == []


def test_event_quality_is_clamped(tmp_path):
    table = write_table(
        tmp_path,
        """
production_events:
  Pre-Production:
    - {kind: positive, title: Script Polish, description: Better., quality_impact: 5}
""",
    )
    pipeline = ProductionPipeline(table, event_chance=1.0)

    step = pipeline.advance(make_movie(quality=98), 1, 2003, EventfulRNG())

    assert step.movie.quality == 100


def test_shipped_event_table_covers_active_phases():
    table = ProductionEventTable()

    for phase in PHASE_ORDER[:-1]:
        assert table.events_for(phase)
    assert table.events_for(ProjectStatus.RELEASED) == []
