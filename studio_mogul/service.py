"""High-level studio service orchestrating player commands and month advances."""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .config import Settings, get_settings
from .engine import AdvanceResult, MonthlyAdvancer
from .errors import (
    ActorUnavailableError,
    InsufficientFundsError,
    InvalidBidError,
    StaleSaveError,
    StudioError,
    UnknownEntityError,
)
from .models import (
    PLAYER_ID,
    Actor,
    ActorStatus,
    Contract,
    EventType,
    GameEvent,
    GameState,
    Movie,
    ProjectStatus,
    StudioMessage,
)
from .production import estimated_release
from .rivals import rival_counter_bid
from .rng import DeterministicRNG
from .storage import DeferredActorWrites, StudioStore
from .telemetry import TelemetryCollector, get_telemetry, track_duration
from .text_generation import TextGenerator, build_text_generator
from .world import DEFAULT_GENERATED_ACTORS, WorldRepository

logger = logging.getLogger(__name__)

AD_EVENT_THRESHOLD = 500_000


class StudioService:
    """Coordinates the store, the engine and the text collaborator per save."""

    def __init__(
        self,
        db_path: Path,
        settings: Settings | None = None,
        text_generator: TextGenerator | None = None,
        telemetry: TelemetryCollector | None = None,
        world: WorldRepository | None = None,
        rng: DeterministicRNG | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._db_path = Path(db_path)
        self._rng = rng or DeterministicRNG.from_entropy()
        self._telemetry = telemetry or get_telemetry()
        self._world = world or WorldRepository()
        self._text = text_generator or build_text_generator(
            timeout=self.settings.text_timeout_seconds,
            remote_headline_ratio=self.settings.remote_headline_ratio,
            telemetry=self._telemetry,
            rng=self._rng,
        )
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # Saves -------------------------------------------------------------
    def store(self, save_id: str) -> StudioStore:
        return StudioStore(self._db_path, save_id)

    def new_game(
        self,
        save_id: str,
        *,
        player_name: str = "",
        studio_name: str = "",
        generated_actors: int = DEFAULT_GENERATED_ACTORS,
    ) -> GameState:
        store = self.store(save_id)
        if store.load_game() is not None:
            raise StudioError(f"Save {save_id} already exists")
        state = self._world.new_game(
            self.settings,
            self._rng,
            player_name=player_name,
            studio_name=studio_name,
            generated_actors=generated_actors,
        )
        store.upsert_actors(state.actors)
        store.save_game(state)
        logger.info("Created save %s with %d actors", save_id, len(state.actors))
        return state

    def load(self, save_id: str) -> GameState:
        state = self.store(save_id).load_game()
        if state is None:
            raise UnknownEntityError(f"Unknown save: {save_id}")
        return state

    def list_saves(self) -> List[Dict[str, object]]:
        return StudioStore(self._db_path).list_saves()

    @contextmanager
    def _session(self, save_id: str) -> Iterator[Tuple[StudioStore, GameState]]:
        """Load a save, let the caller mutate it, then write it back."""

        store = self.store(save_id)
        state = store.load_game()
        if state is None:
            raise UnknownEntityError(f"Unknown save: {save_id}")
        yield store, state
        store.save_game(state)

    # Month advance -----------------------------------------------------
    async def advance_month(self, save_id: str) -> AdvanceResult:
        """Advance one save by a month; concurrent calls on a save queue up."""

        async with self._locks[save_id]:
            store = self.store(save_id)
            state = store.load_game()
            if state is None:
                raise UnknownEntityError(f"Unknown save: {save_id}")
            roster = store.list_actors()
            if roster:
                state.actors = roster

            pending = DeferredActorWrites(store)
            advancer = MonthlyAdvancer(
                store=pending,
                text=self._text,
                rng=self._rng,
                settings=self.settings,
                telemetry=self._telemetry,
            )
            with track_duration("advance_month", self._telemetry, {"save_id": save_id}) as timer:
                result = await advancer.advance(state)
                new_state = result.state
                # No awaits from here on, so only an outside writer can race the save
                stored = store.saved_version()
                if stored != new_state.version:
                    raise StaleSaveError(
                        f"Save {save_id} moved to version {stored} during the advance "
                        f"from version {new_state.version}"
                    )
                for actor_id in pending.flush():
                    if actor_id not in result.failed_actor_ids:
                        result.failed_actor_ids.append(actor_id)
                    self._telemetry.track_error("actor_persistence", operation="update_actor")
                expiry_events = self._expire_contracts(store, new_state)
                new_state.events.extend(expiry_events)
                result.events.extend(expiry_events)
                store.save_game(new_state)

            self._telemetry.track_advance(
                save_id,
                new_state.month,
                new_state.year,
                len(result.events),
                timer.duration_ms,
                failed_actor_count=len(result.failed_actor_ids),
            )
            return result

    def _expire_contracts(self, store: StudioStore, state: GameState) -> List[GameEvent]:
        events = []
        for contract in store.expire_contracts(state.month, state.year):
            actor = state.actor(contract.actor_id)
            if actor is None:
                continue
            if actor.status == ActorStatus.ON_HIATUS:
                actor.status = ActorStatus.AVAILABLE
                store.update_actor(actor.id, {"status": actor.status.value})
            events.append(
                GameEvent(
                    id=self._rng.token("evt"),
                    month=state.month,
                    type=EventType.INFO,
                    message=f"CONTRACT: {actor.name}'s {contract.duration_months}-month contract has ended.",
                )
            )
        return events

    # Auction -----------------------------------------------------------
    def place_bid(self, save_id: str, script_id: str, amount: int) -> Optional[GameEvent]:
        """Take the high bid on a market script.

        A rival may immediately counter; the OUTBID event is returned when
        that happens.
        """

        with self._session(save_id) as (_, state):
            script = next((item for item in state.market_scripts if item.id == script_id), None)
            if script is None:
                raise UnknownEntityError(f"Unknown market script: {script_id}")
            if amount <= script.current_bid and script.high_bidder_id is not None:
                raise InvalidBidError(
                    f"Bid ${amount:,} does not beat current bid ${script.current_bid:,}"
                )
            if amount < script.base_cost:
                raise InvalidBidError(f"Bid ${amount:,} is below the asking price ${script.base_cost:,}")
            if amount > state.balance:
                raise InsufficientFundsError(amount, state.balance)
            script.current_bid = amount
            script.high_bidder_id = PLAYER_ID
            counter = rival_counter_bid(
                state,
                script_id,
                self._rng,
                chance=self.settings.counter_bid_chance,
                min_raise=self.settings.counter_bid_min_raise,
                max_raise=self.settings.counter_bid_max_raise,
            )
            if counter is not None:
                state.events.append(counter)
        return counter

    # Production --------------------------------------------------------
    def _castable(self, store: StudioStore, actor: Actor) -> bool:
        if actor.status == ActorStatus.AVAILABLE:
            return True
        if actor.status == ActorStatus.ON_HIATUS:
            contract = store.get_active_contract(actor.id)
            return contract is not None and contract.studio_id == PLAYER_ID
        return False

    def start_production(
        self,
        save_id: str,
        script_id: str,
        cast_ids: Sequence[str],
        production_budget: int,
        marketing_budget: int,
    ) -> Movie:
        """Greenlight an owned script with the given cast and budgets."""

        if production_budget < 0 or marketing_budget < 0:
            raise StudioError("Budgets must be non-negative")
        with self._session(save_id) as (store, state):
            script = next((item for item in state.owned_scripts if item.id == script_id), None)
            if script is None:
                raise UnknownEntityError(f"Script {script_id} is not owned by the studio")
            cast = list(dict.fromkeys(cast_ids))
            if len(cast) < script.required_cast:
                raise StudioError(
                    f'"{script.title}" needs at least {script.required_cast} cast members'
                )
            actors = []
            for actor_id in cast:
                actor = state.actor(actor_id)
                if actor is None:
                    raise UnknownEntityError(f"Unknown actor: {actor_id}")
                if not self._castable(store, actor):
                    raise ActorUnavailableError(f"{actor.name} is {actor.status.value}")
                actors.append(actor)
            total = production_budget + marketing_budget
            if total > state.balance:
                raise InsufficientFundsError(total, state.balance)

            release_month, release_year = estimated_release(state.month, state.year)
            movie = Movie(
                id=self._rng.token("mov"),
                script_id=script.id,
                studio_id=PLAYER_ID,
                title=script.title,
                genre=script.genre,
                cast=cast,
                marketing_budget=marketing_budget,
                production_budget=production_budget,
                status=ProjectStatus.PRE_PRODUCTION,
                quality=script.quality,
                release_year=state.year,
                estimated_release_month=release_month,
                estimated_release_year=release_year,
                current_budget_spent=production_budget,
            )
            state.balance -= total
            state.projects.append(movie)
            state.owned_scripts = [item for item in state.owned_scripts if item.id != script.id]
            for actor in actors:
                actor.status = ActorStatus.IN_PRODUCTION
                store.update_actor(actor.id, {"status": actor.status.value})
            state.events.append(
                GameEvent(
                    id=self._rng.token("evt"),
                    month=state.month,
                    type=EventType.GOOD,
                    message=f'GREENLIT: "{script.title}" production started.',
                )
            )
            if marketing_budget > AD_EVENT_THRESHOLD:
                state.events.append(
                    GameEvent(
                        id=self._rng.token("evt"),
                        month=state.month,
                        type=EventType.AD,
                        message=f"MARKETING: {script.title}",
                    )
                )
        logger.info("Greenlit %s in save %s", movie.title, save_id)
        return movie

    # Rival relations ---------------------------------------------------
    def transfer_funds(self, save_id: str, rival_id: str, amount: int) -> GameEvent:
        if amount <= 0:
            raise StudioError("Transfer amount must be positive")
        with self._session(save_id) as (_, state):
            rival = state.rival(rival_id)
            if rival is None:
                raise UnknownEntityError(f"Unknown studio: {rival_id}")
            if amount > state.balance:
                raise InsufficientFundsError(amount, state.balance)
            state.balance -= amount
            rival.balance += amount
            rival.adjust_relationship(self.settings.transfer_relationship_bonus)
            event = GameEvent(
                id=self._rng.token("evt"),
                month=state.month,
                type=EventType.INFO,
                message=f"TRANSFER: You wired ${amount:,} to {rival.name}.",
            )
            state.events.append(event)
        return event

    def send_message(
        self, save_id: str, rival_id: str, content: str, *, is_public: bool = False
    ) -> StudioMessage:
        with self._session(save_id) as (_, state):
            rival = state.rival(rival_id)
            if rival is None:
                raise UnknownEntityError(f"Unknown studio: {rival_id}")
            message = StudioMessage(
                id=self._rng.token("msg"),
                from_id=PLAYER_ID,
                to_id=rival_id,
                content=content,
                month=state.month,
                is_public=is_public,
            )
            state.messages.append(message)
            if is_public:
                sender = state.studio_name or "Your studio"
                state.events.append(
                    GameEvent(
                        id=self._rng.token("evt"),
                        month=state.month,
                        type=EventType.GOSSIP,
                        message=f'WIRE: {sender} sends bold memo to {rival.name}: "{content[:30]}..."',
                    )
                )
        return message

    # Talent ------------------------------------------------------------
    def sign_actor(
        self,
        save_id: str,
        actor_id: str,
        duration_months: int,
        monthly_salary: int,
        signing_bonus: int = 0,
    ) -> Contract:
        with self._session(save_id) as (store, state):
            actor = state.actor(actor_id)
            if actor is None:
                raise UnknownEntityError(f"Unknown actor: {actor_id}")
            if actor.status != ActorStatus.AVAILABLE:
                raise ActorUnavailableError(f"{actor.name} is not available for signing")
            if signing_bonus > state.balance:
                raise InsufficientFundsError(signing_bonus, state.balance)
            contract = Contract(
                id=self._rng.token("ctr"),
                actor_id=actor_id,
                studio_id=PLAYER_ID,
                start_month=state.month,
                start_year=state.year,
                duration_months=duration_months,
                monthly_salary=monthly_salary,
                signing_bonus=signing_bonus,
            )
            store.sign_contract(contract)
            state.balance -= signing_bonus
            actor.status = ActorStatus.ON_HIATUS
            store.update_actor(actor.id, {"status": actor.status.value})
            state.events.append(
                GameEvent(
                    id=self._rng.token("evt"),
                    month=state.month,
                    type=EventType.GOOD,
                    message=f"SIGNED: {actor.name} joins the studio on a {duration_months}-month deal.",
                )
            )
        return contract

    def terminate_contract(self, save_id: str, contract_id: str) -> Contract:
        with self._session(save_id) as (store, state):
            contract = store.terminate_contract(contract_id)
            actor = state.actor(contract.actor_id)
            if actor is not None and actor.status == ActorStatus.ON_HIATUS:
                actor.status = ActorStatus.AVAILABLE
                store.update_actor(actor.id, {"status": actor.status.value})
        return contract

    def mark_events_read(self, save_id: str, event_ids: Optional[Sequence[str]] = None) -> int:
        """Flag events as read; all unread events when ``event_ids`` is omitted."""

        wanted = set(event_ids) if event_ids is not None else None
        count = 0
        with self._session(save_id) as (_, state):
            for event in state.events:
                if event.read or (wanted is not None and event.id not in wanted):
                    continue
                event.read = True
                count += 1
        return count


__all__ = ["StudioService", "AD_EVENT_THRESHOLD"]
