"""Annual awards ceremony: nominations, winners and their effects."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    PLAYER_ID,
    Actor,
    AwardCategory,
    AwardNomination,
    AwardsCeremony,
    EventType,
    GameEvent,
    GameState,
    Movie,
    ProjectStatus,
    clamp,
)
from .rng import DeterministicRNG

logger = logging.getLogger(__name__)

ACTING_CATEGORIES: Dict[AwardCategory, str] = {
    AwardCategory.BEST_ACTOR: "Male",
    AwardCategory.BEST_ACTRESS: "Female",
}


class AwardsCeremonyRunner:
    """Holds the yearly ceremony for the films of the previous year."""

    def __init__(
        self,
        *,
        min_quality: float = 50,
        nominees_per_category: int = 5,
        min_eligible_movies: int = 3,
        ceremony_month: int = 2,
    ) -> None:
        self.min_quality = min_quality
        self.nominees_per_category = nominees_per_category
        self.min_eligible_movies = min_eligible_movies
        self.ceremony_month = ceremony_month

    def is_ceremony_month(self, month: int) -> bool:
        return month == self.ceremony_month

    def eligible_movies(self, state: GameState, year: int) -> List[Movie]:
        return [
            movie
            for movie in state.projects
            if movie.status == ProjectStatus.RELEASED
            and movie.release_year == year
            and movie.quality >= self.min_quality
        ]

    def nominate(self, state: GameState, year: int, rng: DeterministicRNG) -> Optional[AwardsCeremony]:
        movies = self.eligible_movies(state, year)
        if len(movies) < self.min_eligible_movies:
            logger.info("No %d ceremony: only %d eligible films", year, len(movies))
            return None
        nominations: List[AwardNomination] = []
        for category in AwardCategory:
            if category in ACTING_CATEGORIES:
                nominations.extend(self._acting_nominations(category, movies, state.actors, rng))
            else:
                nominations.extend(self._movie_nominations(category, movies, rng))
        return AwardsCeremony(
            id=rng.token("award"),
            year=year,
            name=f"{year} Academy Awards",
            nominations=nominations,
        )

    def _movie_nominations(
        self, category: AwardCategory, movies: Sequence[Movie], rng: DeterministicRNG
    ) -> List[AwardNomination]:
        scored = sorted(
            ((movie.quality + rng.uniform(-10, 10), movie) for movie in movies),
            key=lambda item: item[0],
            reverse=True,
        )
        return [
            AwardNomination(
                id=rng.token("nom"),
                category=category,
                movie_id=movie.id,
                movie_title=movie.title,
                studio_id=movie.studio_id,
            )
            for _, movie in scored[: self.nominees_per_category]
        ]

    def _acting_nominations(
        self,
        category: AwardCategory,
        movies: Sequence[Movie],
        actors: Sequence[Actor],
        rng: DeterministicRNG,
    ) -> List[AwardNomination]:
        gender = ACTING_CATEGORIES[category]
        by_id = {actor.id: actor for actor in actors}
        performances: List[Tuple[float, Actor, Movie]] = []
        for movie in movies:
            for actor_id in movie.cast:
                actor = by_id.get(actor_id)
                if actor is None or actor.gender != gender:
                    continue
                score = movie.quality * 0.6 + actor.skill * 0.4 + rng.uniform(0, 15)
                performances.append((score, actor, movie))
        performances.sort(key=lambda item: item[0], reverse=True)

        nominations: List[AwardNomination] = []
        seen = set()
        for _, actor, movie in performances:
            if len(nominations) >= self.nominees_per_category:
                break
            if actor.id in seen:
                continue
            seen.add(actor.id)
            nominations.append(
                AwardNomination(
                    id=rng.token("nom"),
                    category=category,
                    movie_id=movie.id,
                    movie_title=movie.title,
                    studio_id=movie.studio_id,
                    actor_id=actor.id,
                    actor_name=actor.name,
                )
            )
        return nominations

    @staticmethod
    def determine_winners(ceremony: AwardsCeremony, rng: DeterministicRNG) -> AwardsCeremony:
        """Pick one winner per category, favoring higher-ranked nominees."""

        for category in AwardCategory:
            nominees = [item for item in ceremony.nominations if item.category == category]
            if not nominees:
                continue
            weights = [0.7 ** rank * rng.uniform(0.5, 1.5) for rank in range(len(nominees))]
            roll = rng.uniform(0, sum(weights))
            winner = nominees[-1]
            for nominee, weight in zip(nominees, weights):
                roll -= weight
                if roll <= 0:
                    winner = nominee
                    break
            winner.is_winner = True
        ceremony.completed = True
        return ceremony

    @staticmethod
    def apply_effects(
        state: GameState, ceremony: AwardsCeremony, rng: DeterministicRNG
    ) -> List[GameEvent]:
        """Apply reputation and skill boosts to ``state`` in place."""

        events: List[GameEvent] = []
        winners = [item for item in ceremony.nominations if item.is_winner]
        for winner in winners:
            if winner.studio_id == PLAYER_ID:
                boost = 15 if winner.category == AwardCategory.BEST_PICTURE else 5
                # Releases can push reputation past 100; awards only top it up to 100
                state.reputation = max(state.reputation, int(min(100, state.reputation + boost)))
                credit = f" ({winner.actor_name})" if winner.actor_name else ""
                events.append(
                    GameEvent(
                        id=rng.token("evt"),
                        month=state.month,
                        type=EventType.GOOD,
                        message=(
                            f'AWARDS: "{winner.movie_title}" wins {winner.category.value}!'
                            f"{credit} +{boost} reputation"
                        ),
                    )
                )
            if winner.actor_id and winner.category in ACTING_CATEGORIES:
                actor = state.actor(winner.actor_id)
                if actor is None:
                    continue
                actor.skill = int(clamp(actor.skill + rng.randint(5, 9), 0, 100))
                actor.reputation = int(clamp(actor.reputation + 10, 0, 100))
                actor.add_gossip(
                    f'Won {winner.category.value} for "{winner.movie_title}" '
                    f"at the {ceremony.year} Academy Awards"
                )

        player_wins = sum(1 for item in winners if item.studio_id == PLAYER_ID)
        player_nominations = sum(1 for item in ceremony.nominations if item.studio_id == PLAYER_ID)
        events.append(
            GameEvent(
                id=rng.token("evt"),
                month=state.month,
                type=EventType.GOOD if player_wins else EventType.INFO,
                message=(
                    f"AWARDS: {ceremony.name} complete! {state.studio_name or 'Your studio'}: "
                    f"{player_wins} wins from {player_nominations} nominations."
                ),
            )
        )
        return events

    def hold(self, state: GameState, rng: DeterministicRNG) -> List[GameEvent]:
        """Run the ceremony for ``state.year - 1`` if enough films qualify."""

        ceremony = self.nominate(state, state.year - 1, rng)
        if ceremony is None:
            return []
        self.determine_winners(ceremony, rng)
        events = self.apply_effects(state, ceremony, rng)
        state.ceremonies.append(ceremony)
        return events


def player_award_count(ceremonies: Sequence[AwardsCeremony]) -> Tuple[int, int]:
    """Total (wins, nominations) for the player across ``ceremonies``."""

    wins = nominations = 0
    for ceremony in ceremonies:
        for nomination in ceremony.nominations:
            if nomination.studio_id == PLAYER_ID:
                nominations += 1
                if nomination.is_winner:
                    wins += 1
    return wins, nominations


__all__ = [
    "ACTING_CATEGORIES",
    "AwardsCeremonyRunner",
    "player_award_count",
]
