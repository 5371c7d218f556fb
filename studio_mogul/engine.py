"""Monthly advancement engine.

:class:`MonthlyAdvancer` takes a :class:`~studio_mogul.models.GameState` and
builds the state one month later. The caller's object is never touched: the
engine works on a deep copy and only hands it back once the whole month has
run, so a fault partway through leaves the caller with the old state.
"""
from __future__ import annotations

import asyncio
import copy
import logging
import math
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .awards import AwardsCeremonyRunner
from .config import Settings, get_settings
from .errors import StoreError
from .formulas import box_office, chemistry, movie_quality
from .lifecycle import LifecycleSimulator, process_actor_lifecycle
from .models import (
    PLAYER_ID,
    Actor,
    ActorStatus,
    AwardsCeremony,
    EventType,
    GameEvent,
    GameState,
    LifecycleEvent,
    LifecycleEventType,
    Movie,
    ProductionEvent,
    ProductionEventKind,
    Script,
)
from .production import ProductionPipeline
from .rivals import RivalSimulator
from .rng import DeterministicRNG
from .serialization import to_dict
from .storage import ActorStore
from .telemetry import TelemetryCollector
from .text_generation import LocalTextGenerator, TextGenerator

logger = logging.getLogger(__name__)

# Fields written back to the store when they change during a month
PERSISTED_ACTOR_FIELDS = (
    "reputation",
    "skill",
    "salary",
    "status",
    "age",
    "tier",
    "relationships",
    "gossip",
)

_BAD_LIFECYCLE = {
    LifecycleEventType.DEATH,
    LifecycleEventType.SCANDAL,
    LifecycleEventType.CAREER_SLUMP,
    LifecycleEventType.FEUD,
    LifecycleEventType.DIVORCE,
}
_GOOD_LIFECYCLE = {
    LifecycleEventType.AWARD_WIN,
    LifecycleEventType.COMEBACK,
    LifecycleEventType.BREAKOUT_ROLE,
}

_PRODUCTION_EVENT_TYPES = {
    ProductionEventKind.POSITIVE: EventType.GOOD,
    ProductionEventKind.NEGATIVE: EventType.BAD,
    ProductionEventKind.NEUTRAL: EventType.INFO,
}


def lifecycle_event_type(event_type: LifecycleEventType) -> EventType:
    """Log category for a lifecycle event; anything unlisted is GOSSIP."""

    if event_type in _BAD_LIFECYCLE:
        return EventType.BAD
    if event_type in _GOOD_LIFECYCLE:
        return EventType.GOOD
    return EventType.GOSSIP


@dataclass
class AdvanceResult:
    state: GameState
    events: List[GameEvent] = field(default_factory=list)
    lifecycle_events: List[LifecycleEvent] = field(default_factory=list)
    released: List[Movie] = field(default_factory=list)
    ceremony: Optional[AwardsCeremony] = None
    failed_actor_ids: List[str] = field(default_factory=list)


class MonthlyAdvancer:
    """Runs the fixed monthly sequence against injected collaborators."""

    def __init__(
        self,
        *,
        store: Optional[ActorStore] = None,
        text: Optional[TextGenerator] = None,
        rng: Optional[DeterministicRNG] = None,
        settings: Optional[Settings] = None,
        lifecycle: Optional[LifecycleSimulator] = None,
        pipeline: Optional[ProductionPipeline] = None,
        rivals: Optional[RivalSimulator] = None,
        awards: Optional[AwardsCeremonyRunner] = None,
        telemetry: Optional[TelemetryCollector] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._rng = rng
        self._store = store
        self._text = text
        self._lifecycle = lifecycle or LifecycleSimulator()
        self._pipeline = pipeline or ProductionPipeline(
            event_chance=self.settings.production_event_chance
        )
        self._rivals = rivals or RivalSimulator(
            active_min=self.settings.rival_active_min,
            active_max=self.settings.rival_active_max,
            release_chance=self.settings.rival_release_chance,
            raving_threshold=self.settings.raving_threshold,
        )
        self._awards = awards or AwardsCeremonyRunner(
            min_quality=self.settings.awards_min_quality,
            nominees_per_category=self.settings.awards_nominees_per_category,
            min_eligible_movies=self.settings.awards_min_eligible_movies,
            ceremony_month=self.settings.awards_ceremony_month,
        )
        self._telemetry = telemetry

    async def advance(self, state: GameState) -> AdvanceResult:
        rng = self._rng or DeterministicRNG.from_entropy()
        fallback = LocalTextGenerator(rng)
        text = self._text or fallback
        new_state = copy.deepcopy(state)
        result = AdvanceResult(state=new_state)
        events = result.events

        self._roll_calendar(new_state)
        events.extend(self._resolve_auction(new_state, rng))

        before = self._snapshot(new_state.actors)
        actors, lifecycle_events = process_actor_lifecycle(
            new_state.actors, new_state.month, rng, self._lifecycle
        )
        new_state.actors = actors
        result.lifecycle_events = lifecycle_events
        self._persist_changes(before, new_state.actors, result.failed_actor_ids)
        events.extend(
            GameEvent(
                id=rng.token("evt"),
                month=new_state.month,
                type=lifecycle_event_type(event.type),
                message=event.message,
            )
            for event in lifecycle_events
            if not event.is_silent
        )

        events.extend(self._rivals.simulate(new_state, rng))

        headline = await self._ask(
            "headline",
            lambda: text.generate_headline(new_state.year),
            lambda: fallback.headline(),
        )
        events.append(
            GameEvent(
                id=rng.token("evt"),
                month=new_state.month,
                type=EventType.GOSSIP,
                message=f"GOSSIP: {headline}",
            )
        )

        after_lifecycle = self._snapshot(new_state.actors)
        await self._advance_projects(new_state, rng, text, fallback, result)

        if self.settings.awards_enabled and self._awards.is_ceremony_month(new_state.month):
            ceremony_events = self._awards.hold(new_state, rng)
            if ceremony_events:
                result.ceremony = new_state.ceremonies[-1]
                events.extend(ceremony_events)

        self._persist_changes(after_lifecycle, new_state.actors, result.failed_actor_ids)

        if not new_state.market_scripts:
            new_state.market_scripts = await self._refresh_market(new_state, rng, text, fallback)

        new_state.events.extend(events)
        logger.info(
            "Advanced to %02d/%d: %d events, %d releases, %d failed actor updates",
            new_state.month,
            new_state.year,
            len(events),
            len(result.released),
            len(result.failed_actor_ids),
        )
        return result

    # Steps -------------------------------------------------------------
    @staticmethod
    def _roll_calendar(state: GameState) -> None:
        state.month += 1
        if state.month > 12:
            state.month = 1
            state.year += 1
            for rival in state.rivals:
                rival.yearly_revenue = 0

    @staticmethod
    def _resolve_auction(state: GameState, rng: DeterministicRNG) -> List[GameEvent]:
        events = []
        for script in state.market_scripts:
            if script.high_bidder_id != PLAYER_ID:
                continue
            state.balance -= script.current_bid
            state.owned_scripts.append(script)
            events.append(
                GameEvent(
                    id=rng.token("evt"),
                    month=state.month,
                    type=EventType.AUCTION,
                    message=f'AUCTION WON: Rights to "{script.title}" secured for ${script.current_bid:,}.',
                )
            )
        # Unwon scripts leave the market with everything else
        state.market_scripts = []
        return events

    async def _advance_projects(
        self,
        state: GameState,
        rng: DeterministicRNG,
        text: TextGenerator,
        fallback: LocalTextGenerator,
        result: AdvanceResult,
    ) -> None:
        for index, movie in enumerate(state.projects):
            if movie.studio_id != PLAYER_ID or movie.is_released:
                continue
            step = self._pipeline.advance(movie, state.month, state.year, rng)
            updated = step.movie
            state.projects[index] = updated
            if step.event is not None:
                result.events.append(self._production_event(state, updated, step.event, rng))
            if step.phase_changed and not step.released:
                result.events.append(
                    GameEvent(
                        id=rng.token("evt"),
                        month=state.month,
                        type=EventType.INFO,
                        message=f'PHASE: "{updated.title}" moves into {updated.status.value}.',
                    )
                )
            if step.released:
                await self._release(state, updated, rng, text, fallback, result)

    @staticmethod
    def _production_event(
        state: GameState, movie: Movie, event: ProductionEvent, rng: DeterministicRNG
    ) -> GameEvent:
        return GameEvent(
            id=rng.token("evt"),
            month=state.month,
            type=_PRODUCTION_EVENT_TYPES[event.kind],
            message=f'PRODUCTION: "{movie.title}" - {event.title}. {event.description}',
        )

    async def _release(
        self,
        state: GameState,
        movie: Movie,
        rng: DeterministicRNG,
        text: TextGenerator,
        fallback: LocalTextGenerator,
        result: AdvanceResult,
    ) -> None:
        # The script left the owned list at greenlight; the project carries its quality
        script = Script(
            id=movie.script_id,
            title=movie.title,
            genre=movie.genre,
            quality=movie.quality,
        )
        movie.chemistry = chemistry(movie.cast, state.actors)
        movie.quality = movie_quality(movie, state.actors, script, movie.chemistry, rng)
        movie.revenue = box_office(movie, state, rng)
        state.balance += movie.revenue
        state.reputation += math.floor(movie.quality / 10)
        self._free_cast(state, movie.cast)

        review = await self._ask(
            "review",
            lambda: text.generate_review(movie),
            lambda: fallback.review(movie),
        )
        movie.reviews = [review]
        result.released.append(movie)
        result.events.append(
            GameEvent(
                id=rng.token("evt"),
                month=state.month,
                type=EventType.GOOD,
                message=f'RELEASE: "{movie.title}" hits theaters! Opening gross ${movie.revenue:,}.',
            )
        )
        if self._telemetry is not None:
            self._telemetry.track_game_progression(
                "release",
                movie.revenue,
                details={"movie_id": movie.id, "quality": round(movie.quality, 1)},
            )

    def _free_cast(self, state: GameState, cast: Sequence[str]) -> None:
        for actor_id in cast:
            actor = state.actor(actor_id)
            if actor is None or actor.status != ActorStatus.IN_PRODUCTION:
                continue
            actor.status = (
                ActorStatus.ON_HIATUS if self._has_contract(actor_id) else ActorStatus.AVAILABLE
            )

    def _has_contract(self, actor_id: str) -> bool:
        if self._store is None:
            return False
        try:
            return self._store.get_active_contract(actor_id) is not None
        except (sqlite3.Error, StoreError):
            logger.exception("Could not read contract for actor %s", actor_id)
            return False

    async def _refresh_market(
        self,
        state: GameState,
        rng: DeterministicRNG,
        text: TextGenerator,
        fallback: LocalTextGenerator,
    ) -> List[Script]:
        settings = self.settings
        ideas = await self._ask(
            "script_ideas",
            lambda: text.generate_script_ideas(state.year, count=settings.market_script_count),
            lambda: fallback.script_ideas(settings.market_script_count),
        )
        scripts = []
        for idea in ideas:
            base_cost = rng.randint(settings.script_base_cost_min, settings.script_base_cost_max - 1)
            high_bidder = rng.choice(state.rivals).id if state.rivals else None
            scripts.append(
                Script(
                    id=rng.token("script"),
                    title=idea.title or "Untitled",
                    genre=idea.genre,
                    quality=rng.uniform(settings.script_quality_min, settings.script_quality_max),
                    complexity=50,
                    base_cost=base_cost,
                    current_bid=base_cost,
                    high_bidder_id=high_bidder,
                    required_cast=2,
                    tone=idea.tone,
                    description=idea.description or "...",
                    tagline=idea.tagline,
                )
            )
        return scripts

    # Collaborators -----------------------------------------------------
    async def _ask(
        self,
        kind: str,
        call: Callable[[], Awaitable[Any]],
        fallback: Callable[[], Any],
    ) -> Any:
        """Await a text collaborator call, substituting local text on any failure."""

        try:
            return await asyncio.wait_for(call(), timeout=self.settings.text_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Text collaborator timed out generating %s; using local text", kind)
            error = "timeout"
        except Exception as exc:
            logger.warning("Text collaborator failed generating %s: %s", kind, exc)
            error = str(exc)
        if self._telemetry is not None:
            self._telemetry.track_error("text_generation", operation=kind, error_details=error)
        return fallback()

    @staticmethod
    def _snapshot(actors: Sequence[Actor]) -> Dict[str, Dict[str, Any]]:
        return {actor.id: to_dict(actor) for actor in actors}

    def _persist_changes(
        self,
        before: Dict[str, Dict[str, Any]],
        actors: Sequence[Actor],
        failed: List[str],
    ) -> None:
        """Write changed fields actor by actor; one failure never blocks the rest."""

        if self._store is None:
            return
        for actor in actors:
            previous = before.get(actor.id)
            if previous is None:
                continue
            current = to_dict(actor)
            changed = {
                name: current[name]
                for name in PERSISTED_ACTOR_FIELDS
                if current[name] != previous[name]
            }
            if not changed:
                continue
            try:
                self._store.update_actor(actor.id, changed)
            except (sqlite3.Error, StoreError):
                logger.exception("Failed to persist changes for actor %s", actor.id)
                if actor.id not in failed:
                    failed.append(actor.id)
                if self._telemetry is not None:
                    self._telemetry.track_error("actor_persistence", operation="update_actor")


async def advance_month(
    state: GameState,
    *,
    store: Optional[ActorStore] = None,
    text: Optional[TextGenerator] = None,
    rng: Optional[DeterministicRNG] = None,
    settings: Optional[Settings] = None,
) -> GameState:
    """Convenience wrapper returning only the next month's state."""

    advancer = MonthlyAdvancer(store=store, text=text, rng=rng, settings=settings)
    result = await advancer.advance(state)
    return result.state


__all__ = [
    "PERSISTED_ACTOR_FIELDS",
    "lifecycle_event_type",
    "AdvanceResult",
    "MonthlyAdvancer",
    "advance_month",
]
