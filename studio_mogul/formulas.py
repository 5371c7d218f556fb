"""Derived numbers: cast chemistry, movie quality and box office."""

from __future__ import annotations

import math
from typing import Iterable, List, Sequence

from .models import Actor, GameState, Movie, ProjectStatus, Script, clamp
from .rng import DeterministicRNG

BIG_BUDGET = 10_000_000
SHOESTRING_BUDGET = 500_000
COMPETITION_PENALTY = 0.15
COMPETITION_FLOOR = 0.4


def _cast_members(cast_ids: Iterable[str], actors: Sequence[Actor]) -> List[Actor]:
    wanted = set(cast_ids)
    return [actor for actor in actors if actor.id in wanted]


def chemistry(cast_ids: Sequence[str], actors: Sequence[Actor]) -> int:
    """Sum of pairwise average relationships across the cast."""

    cast = _cast_members(cast_ids, actors)
    if len(cast) < 2:
        return 0
    total = 0.0
    for i, first in enumerate(cast):
        for second in cast[i + 1:]:
            total += (first.relationship_with(second.id) + second.relationship_with(first.id)) / 2
    return int(round(total))


def movie_quality(
    movie: Movie,
    actors: Sequence[Actor],
    script: Script,
    chemistry_score: int,
    rng: DeterministicRNG,
) -> float:
    cast = _cast_members(movie.cast, actors)
    quality = float(script.quality)
    average_skill = sum(actor.skill for actor in cast) / (len(cast) or 1)
    genre_matches = sum(1 for actor in cast if movie.genre in actor.genres)
    quality += average_skill * 0.4
    quality += genre_matches * 5
    quality += chemistry_score
    total_budget = movie.production_budget + movie.marketing_budget
    if total_budget > BIG_BUDGET:
        quality += 10
    elif total_budget < SHOESTRING_BUDGET:
        quality -= 10
    quality += rng.uniform(-10, 10)
    return clamp(quality, 1, 100)


def competitor_count(movie: Movie, state: GameState) -> int:
    """Other releases sharing the movie's genre in the current month."""

    return sum(
        1
        for other in state.projects
        if other.status == ProjectStatus.RELEASED
        and other.release_month == state.month
        and other.release_year == state.year
        and other.genre == movie.genre
        and other.id != movie.id
    )


def box_office(movie: Movie, state: GameState, rng: DeterministicRNG) -> int:
    base = movie.production_budget * 1.5
    quality_multiplier = math.pow(max(0.0, movie.quality) / 45, 2.5)
    penalty = max(COMPETITION_FLOOR, 1 - competitor_count(movie, state) * COMPETITION_PENALTY)
    revenue = (base * quality_multiplier + movie.marketing_budget * 2) * penalty
    revenue *= rng.uniform(0.8, 1.2)
    return max(0, math.floor(revenue))


__all__ = ["chemistry", "movie_quality", "box_office", "competitor_count"]
