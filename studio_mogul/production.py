"""Production pipeline: phase progression and on-set events."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from .models import Movie, ProductionEvent, ProductionEventKind, ProjectStatus, clamp
from .rng import DeterministicRNG

_DATA_PATH = Path(__file__).parent / "data"

PHASE_ORDER: Tuple[ProjectStatus, ...] = (
    ProjectStatus.PRE_PRODUCTION,
    ProjectStatus.FILMING,
    ProjectStatus.POST_PRODUCTION,
    ProjectStatus.MARKETING,
    ProjectStatus.RELEASED,
)

PHASE_DURATIONS: Dict[ProjectStatus, int] = {
    ProjectStatus.PRE_PRODUCTION: 1,
    ProjectStatus.FILMING: 2,
    ProjectStatus.POST_PRODUCTION: 2,
    ProjectStatus.MARKETING: 1,
    ProjectStatus.RELEASED: 0,
}

PHASE_PROGRESS_PER_MONTH: Dict[ProjectStatus, float] = {
    ProjectStatus.PRE_PRODUCTION: 100,
    ProjectStatus.FILMING: 50,
    ProjectStatus.POST_PRODUCTION: 50,
    ProjectStatus.MARKETING: 100,
    ProjectStatus.RELEASED: 0,
}

PHASE_WEIGHTS: Dict[ProjectStatus, int] = {
    ProjectStatus.PRE_PRODUCTION: 10,
    ProjectStatus.FILMING: 50,
    ProjectStatus.POST_PRODUCTION: 30,
    ProjectStatus.MARKETING: 10,
    ProjectStatus.RELEASED: 0,
}

PROGRESS_NOISE = 5.0


def next_phase(current: ProjectStatus) -> ProjectStatus:
    index = PHASE_ORDER.index(current)
    return PHASE_ORDER[min(index + 1, len(PHASE_ORDER) - 1)]


def overall_progress(status: ProjectStatus, phase_progress: float) -> int:
    """Weighted sum of finished phases plus the share of the current one.

    Only a released project reaches 100.
    """

    if status == ProjectStatus.RELEASED:
        return 100
    index = PHASE_ORDER.index(status)
    total = sum(PHASE_WEIGHTS[phase] for phase in PHASE_ORDER[:index])
    total += (phase_progress / 100) * PHASE_WEIGHTS[status]
    return min(99, math.floor(total))


def add_months(month: int, year: int, months: int) -> Tuple[int, int]:
    month += months
    while month > 12:
        month -= 12
        year += 1
    return month, year


def estimated_release(start_month: int, start_year: int) -> Tuple[int, int]:
    """Release date assuming every phase runs its nominal duration."""

    return add_months(start_month, start_year, sum(PHASE_DURATIONS.values()))


@dataclass
class ProductionEventTemplate:
    kind: ProductionEventKind
    title: str
    description: str
    quality_impact: int = 0
    budget_impact: int = 0
    delay_months: int = 0


class ProductionEventTable:
    """Per-phase tables of on-set events."""

    def __init__(self, data_path: Path | None = None) -> None:
        self._path = data_path or _DATA_PATH
        data = self._load_yaml("production_events.yaml")
        self._tables: Dict[ProjectStatus, List[ProductionEventTemplate]] = {}
        for phase, entries in data["production_events"].items():
            self._tables[ProjectStatus(phase)] = [
                ProductionEventTemplate(
                    kind=ProductionEventKind(entry["kind"]),
                    title=entry["title"],
                    description=entry["description"],
                    quality_impact=int(entry.get("quality_impact", 0)),
                    budget_impact=int(entry.get("budget_impact", 0)),
                    delay_months=int(entry.get("delay_months", 0)),
                )
                for entry in entries
            ]

    def _load_yaml(self, name: str) -> Dict:
        with (self._path / name).open("r", encoding="utf-8") as fh:
            return yaml.safe_load(fh)

    def events_for(self, phase: ProjectStatus) -> List[ProductionEventTemplate]:
        return self._tables.get(phase, [])

    def roll(
        self, rng: DeterministicRNG, phase: ProjectStatus, month: int
    ) -> Optional[ProductionEvent]:
        table = self.events_for(phase)
        if not table:
            return None
        template = rng.choice(table)
        return ProductionEvent(
            id=rng.token("prod"),
            month=month,
            phase=phase,
            kind=template.kind,
            title=template.title,
            description=template.description,
            quality_impact=template.quality_impact,
            budget_impact=template.budget_impact,
            delay_months=template.delay_months,
        )


@dataclass
class ProductionAdvance:
    movie: Movie
    event: Optional[ProductionEvent] = None
    phase_changed: bool = False
    released: bool = False


class ProductionPipeline:
    """Moves a project one month through its production phases."""

    def __init__(
        self,
        events: ProductionEventTable | None = None,
        *,
        event_chance: float = 0.30,
    ) -> None:
        self._events = events or ProductionEventTable()
        self._event_chance = event_chance

    def advance(
        self,
        movie: Movie,
        month: int,
        year: int,
        rng: DeterministicRNG,
    ) -> ProductionAdvance:
        if movie.is_released:
            return ProductionAdvance(movie=movie)

        updated = copy.deepcopy(movie)
        current = movie.status
        event: Optional[ProductionEvent] = None
        if rng.chance(self._event_chance):
            event = self._events.roll(rng, current, month)
        if event is not None:
            updated.production_events.append(event)
            updated.quality = clamp(updated.quality + event.quality_impact, 0, 100)
            updated.current_budget_spent += event.budget_impact
            if event.delay_months > 0 and updated.estimated_release_month:
                updated.estimated_release_month, updated.estimated_release_year = add_months(
                    updated.estimated_release_month,
                    updated.estimated_release_year or year,
                    event.delay_months,
                )

        gain = PHASE_PROGRESS_PER_MONTH[current] + rng.uniform(-PROGRESS_NOISE, PROGRESS_NOISE)
        updated.phase_progress = min(100.0, updated.phase_progress + gain)

        phase_changed = False
        released = False
        if updated.phase_progress >= 100:
            updated.phase_progress = 0.0
            updated.status = next_phase(current)
            phase_changed = True
            if updated.status == ProjectStatus.RELEASED:
                released = True
                updated.release_month = month
                updated.release_year = year

        updated.progress = max(movie.progress, overall_progress(updated.status, updated.phase_progress))
        return ProductionAdvance(
            movie=updated, event=event, phase_changed=phase_changed, released=released
        )


__all__ = [
    "PHASE_ORDER",
    "PHASE_DURATIONS",
    "PHASE_PROGRESS_PER_MONTH",
    "PHASE_WEIGHTS",
    "next_phase",
    "overall_progress",
    "add_months",
    "estimated_release",
    "ProductionEventTemplate",
    "ProductionEventTable",
    "ProductionAdvance",
    "ProductionPipeline",
]
