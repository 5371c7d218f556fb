"""Tests for world seeding and actor generation."""
from __future__ import annotations

from studio_mogul.config import get_settings
from studio_mogul.models import ActorStatus, ActorTier
from studio_mogul.rng import DeterministicRNG
from studio_mogul.world import WorldRepository


def test_seed_roster_and_scripts():
    repo = WorldRepository()

    actors = repo.seed_actors()
    scripts = repo.seed_scripts()

    assert [actor.name for actor in actors][:2] == ["Brad Fitt", "Julia Roberts-ish"]
    assert all(actor.status == ActorStatus.AVAILABLE for actor in actors)
    assert scripts[0].high_bidder_id == "r3"
    assert scripts[0].current_bid == scripts[0].base_cost == 500_000


def test_generated_actors_are_reproducible():
    repo = WorldRepository()

    first = repo.generate_actors(DeterministicRNG(8), 20)
    second = repo.generate_actors(DeterministicRNG(8), 20)

    assert first == second
    assert [actor.id for actor in first] == [f"g{i}" for i in range(1, 21)]
    for actor in first:
        assert 19 <= actor.age <= 72
        assert actor.tier in set(ActorTier)
        assert 1 <= len(actor.genres) <= 2
        assert len(actor.personality) == 2


def test_rivals_cover_every_studio_name():
    repo = WorldRepository()

    rivals = repo.build_rivals(DeterministicRNG(3))

    assert len(rivals) == len(repo.studio_names)
    assert rivals[0].id == "r0"
    for rival in rivals:
        assert 30 <= rival.reputation < 90
        assert 5_000_000 <= rival.balance < 100_000_000
        assert rival.relationship == 0


def test_new_game_uses_settings():
    settings = get_settings()

    state = WorldRepository().new_game(
        settings, DeterministicRNG(4), player_name="Sam", studio_name="Sam Studios", generated_actors=5
    )

    assert (state.month, state.year) == (settings.start_month, settings.start_year)
    assert state.balance == settings.initial_balance
    assert len(state.actors) == 10
    assert state.owned_scripts == [] and state.projects == []
    assert state.studio_name == "Sam Studios"
