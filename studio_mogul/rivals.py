"""Rival studio activity: monthly releases and auction counter-bids."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .formulas import box_office
from .models import (
    PLAYER_ID,
    EventType,
    GameEvent,
    GameState,
    Genre,
    Movie,
    ProjectStatus,
    RivalStudio,
)
from .rng import DeterministicRNG

logger = logging.getLogger(__name__)

DEFAULT_RIVAL_TITLES = (
    "Dark Knight Rising",
    "Lost in Translation-ish",
    "Finding Nemo-alike",
    "Oldboy-remake",
    "Mean Girls-proto",
)


class RivalSimulator:
    """Lets a handful of rival studios release films each month."""

    def __init__(
        self,
        titles: Sequence[str] = DEFAULT_RIVAL_TITLES,
        *,
        active_min: int = 3,
        active_max: int = 6,
        release_chance: float = 0.60,
        raving_threshold: float = 70,
    ) -> None:
        self._titles = list(titles)
        self._active_min = active_min
        self._active_max = active_max
        self._release_chance = release_chance
        self._raving_threshold = raving_threshold

    def simulate(self, state: GameState, rng: DeterministicRNG) -> List[GameEvent]:
        """Mutate ``state`` in place with this month's rival releases."""

        if not state.rivals:
            return []
        count = min(rng.randint(self._active_min, self._active_max), len(state.rivals))
        events: List[GameEvent] = []
        for rival in rng.sample(state.rivals, count):
            if not rng.chance(self._release_chance):
                continue
            movie = self._release(rival, state, rng)
            events.append(
                GameEvent(
                    id=rng.token("evt"),
                    month=state.month,
                    type=EventType.INFO,
                    message=(
                        f'BO: {rival.name} released "{movie.title}". Reviews are '
                        f'{"RAVING" if movie.quality > self._raving_threshold else "MIXED"}.'
                    ),
                )
            )
        return events

    def _release(self, rival: RivalStudio, state: GameState, rng: DeterministicRNG) -> Movie:
        movie = Movie(
            id=rng.token("mov"),
            script_id="ai-script",
            studio_id=rival.id,
            title=f"{rival.name} presents {rng.choice(self._titles)}",
            genre=rng.choice(list(Genre)),
            marketing_budget=int(rng.uniform(1_000_000, 6_000_000)),
            production_budget=int(rng.uniform(2_000_000, 12_000_000)),
            progress=100,
            status=ProjectStatus.RELEASED,
            quality=rng.uniform(30, 95),
            release_month=state.month,
            release_year=state.year,
        )
        movie.revenue = box_office(movie, state, rng)
        rival.balance += movie.revenue
        rival.yearly_revenue += movie.revenue
        rival.project_ids.append(movie.id)
        state.projects.append(movie)
        logger.debug("%s released %s for $%d", rival.name, movie.title, movie.revenue)
        return movie


def rival_counter_bid(
    state: GameState,
    script_id: str,
    rng: DeterministicRNG,
    *,
    chance: float = 0.60,
    min_raise: int = 20_000,
    max_raise: int = 100_000,
) -> Optional[GameEvent]:
    """Maybe have a random rival outbid the player on ``script_id``.

    Returns the OUTBID event when a rival took the high bid, else ``None``.
    """

    script = next((item for item in state.market_scripts if item.id == script_id), None)
    if script is None or script.high_bidder_id != PLAYER_ID or not state.rivals:
        return None
    if not rng.chance(chance):
        return None
    rival = rng.choice(state.rivals)
    new_bid = script.current_bid + rng.randint(min_raise, max_raise)
    if rival.balance < new_bid:
        return None
    script.current_bid = new_bid
    script.high_bidder_id = rival.id
    return GameEvent(
        id=rng.token("evt"),
        month=state.month,
        type=EventType.BAD,
        message=f'OUTBID: {rival.name} raised the bid on "{script.title}" to ${new_bid:,}.',
    )


__all__ = ["DEFAULT_RIVAL_TITLES", "RivalSimulator", "rival_counter_bid"]
