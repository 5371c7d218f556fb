"""Tests for the monthly advancement engine."""
from __future__ import annotations

import asyncio
import copy
import math
from dataclasses import replace

import pytest

from studio_mogul.config import get_settings
from studio_mogul.engine import MonthlyAdvancer, advance_month, lifecycle_event_type
from studio_mogul.errors import StoreError
from studio_mogul.models import (
    PLAYER_ID,
    Actor,
    ActorStatus,
    ActorTier,
    Contract,
    EventType,
    GameState,
    Genre,
    LifecycleEventType,
    Movie,
    ProjectStatus,
    RivalStudio,
    Script,
    Tone,
)
from studio_mogul.rivals import RivalSimulator
from studio_mogul.rng import DeterministicRNG
from studio_mogul.telemetry import TelemetryCollector
from studio_mogul.text_generation import LocalTextGenerator, ScriptIdea


class NeutralRNG(DeterministicRNG):
    """Nothing random fires and uniform draws sit at their midpoint."""

    def __init__(self, seed: int = 0) -> None:
        super().__init__(seed)

    def chance(self, probability: float) -> bool:
        return False

    def uniform(self, a: float, b: float) -> float:
        return (a + b) / 2


class AgingOnlyRNG(DeterministicRNG):
    """Only the yearly aging check succeeds."""

    def chance(self, probability: float) -> bool:
        return probability == 1.0 / 12


class MemoryStore:
    def __init__(self, actors=(), contracts=None, failing=()):
        self.actors = {actor.id: copy.deepcopy(actor) for actor in actors}
        self.contracts = contracts or {}
        self.failing = set(failing)
        self.updates = []

    def list_actors(self):
        return list(self.actors.values())

    def update_actor(self, actor_id, fields):
        if actor_id in self.failing:
            raise StoreError("disk full")
        self.updates.append((actor_id, fields))

    def get_active_contract(self, actor_id):
        return self.contracts.get(actor_id)


class CannedText:
    async def generate_script_ideas(self, year, count=3):
        return [
            ScriptIdea(
                title=f"Idea {index}",
                description="A caper.",
                tagline="Go.",
                genre=Genre.COMEDY,
                tone=Tone.QUIRKY,
            )
            for index in range(count)
        ]

    async def generate_review(self, movie):
        return f"Review of {movie.title}"

    async def generate_headline(self, year):
        return f"Headline for {year}"


class BrokenText:
    async def generate_script_ideas(self, year, count=3):
        raise ConnectionError("service down")

    async def generate_review(self, movie):
        raise ConnectionError("service down")

    async def generate_headline(self, year):
        raise ConnectionError("service down")


class SlowText(CannedText):
    async def generate_headline(self, year):
        await asyncio.sleep(5)
        return "too late"

    async def generate_script_ideas(self, year, count=3):
        await asyncio.sleep(5)
        return []


def make_actor(actor_id, status=ActorStatus.AVAILABLE, skill=50, age=30):
    return Actor(
        id=actor_id,
        name=f"Actor {actor_id}",
        age=age,
        gender="Female",
        tier=ActorTier.C_LIST,
        salary=100_000,
        reputation=50,
        skill=skill,
        status=status,
    )


def make_state(month=5, year=2003, **kwargs):
    rivals = kwargs.pop(
        "rivals",
        [
            RivalStudio(id="r1", name="Metro-G-M", reputation=50, balance=20_000_000, yearly_revenue=3_000_000),
            RivalStudio(id="r2", name="Orion-ish", reputation=40, balance=9_000_000, yearly_revenue=1_500_000),
        ],
    )
    return GameState(
        month=month,
        year=year,
        balance=kwargs.pop("balance", 5_000_000),
        reputation=kwargs.pop("reputation", 30),
        rivals=rivals,
        studio_name="Test Pictures",
        **kwargs,
    )


def quiet_advancer(**kwargs):
    kwargs.setdefault("rng", NeutralRNG())
    kwargs.setdefault("text", CannedText())
    kwargs.setdefault("rivals", RivalSimulator(release_chance=0.0))
    return MonthlyAdvancer(**kwargs)


@pytest.mark.asyncio
async def test_december_rolls_into_new_year_and_resets_rival_revenue():
    state = make_state(month=12, year=2003)

    result = await quiet_advancer().advance(state)

    assert (result.state.month, result.state.year) == (1, 2004)
    assert all(rival.yearly_revenue == 0 for rival in result.state.rivals)


@pytest.mark.asyncio
async def test_mid_year_keeps_rival_revenue():
    state = make_state(month=6)

    result = await quiet_advancer().advance(state)

    assert (result.state.month, result.state.year) == (7, 2003)
    assert [rival.yearly_revenue for rival in result.state.rivals] == [3_000_000, 1_500_000]


@pytest.mark.asyncio
async def test_auction_won_by_player_is_paid_and_owned():
    won = Script(
        id="s1",
        title="The Matrix: Re-Reloaded",
        genre=Genre.SCIFI,
        quality=85,
        base_cost=500_000,
        current_bid=500_000,
        high_bidder_id=PLAYER_ID,
    )
    lost = Script(id="s2", title="Wedding 2", genre=Genre.COMEDY, quality=60, current_bid=300_000, high_bidder_id="r2")
    state = make_state(market_scripts=[won, lost])

    result = await quiet_advancer().advance(state)

    new_state = result.state
    assert new_state.balance == 4_500_000
    assert [script.id for script in new_state.owned_scripts] == ["s1"]
    assert {script.id for script in new_state.market_scripts}.isdisjoint({"s1", "s2"})
    auction = [event for event in result.events if event.type == EventType.AUCTION]
    assert [event.message for event in auction] == [
        'AUCTION WON: Rights to "The Matrix: Re-Reloaded" secured for $500,000.'
    ]


@pytest.mark.asyncio
async def test_empty_market_is_refreshed_from_text_ideas():
    state = make_state()
    settings = get_settings()

    result = await quiet_advancer().advance(state)

    scripts = result.state.market_scripts
    assert [script.title for script in scripts] == ["Idea 0", "Idea 1", "Idea 2"]
    for script in scripts:
        assert settings.script_base_cost_min <= script.base_cost < settings.script_base_cost_max
        assert script.current_bid == script.base_cost
        assert script.high_bidder_id in {"r1", "r2"}
        assert script.required_cast == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [CannedText(), BrokenText()])
async def test_market_refresh_uses_configured_script_count(text):
    settings = replace(get_settings(), market_script_count=5)

    result = await quiet_advancer(text=text, settings=settings).advance(make_state())

    assert len(result.state.market_scripts) == 5


@pytest.mark.asyncio
async def test_caller_state_is_not_mutated():
    state = make_state(actors=[make_actor("a1")], market_scripts=[])
    before = copy.deepcopy(state)

    result = await quiet_advancer(rng=AgingOnlyRNG(1)).advance(state)

    assert state == before
    assert result.state is not state
    assert result.state.actors[0].age == 31


@pytest.mark.asyncio
async def test_headline_is_logged_as_gossip_and_events_appended():
    state = make_state()

    result = await quiet_advancer().advance(state)

    gossip = [event for event in result.events if event.type == EventType.GOSSIP]
    assert [event.message for event in gossip] == ["GOSSIP: Headline for 2003"]
    assert result.state.events[-len(result.events):] == result.events
    assert all(event.month == result.state.month for event in result.events)


@pytest.mark.asyncio
async def test_changed_actors_are_persisted_field_by_field():
    actors = [make_actor("a1", age=30), make_actor("a2", age=44)]
    store = MemoryStore(actors)

    result = await quiet_advancer(store=store, rng=AgingOnlyRNG(2)).advance(make_state(actors=actors))

    assert store.updates == [("a1", {"age": 31}), ("a2", {"age": 45})]
    assert result.failed_actor_ids == []


@pytest.mark.asyncio
async def test_persistence_failure_does_not_block_other_actors(tmp_path):
    actors = [make_actor("a1"), make_actor("a2"), make_actor("a3")]
    store = MemoryStore(actors, failing={"a2"})
    telemetry = TelemetryCollector(tmp_path / "telemetry.db")

    result = await quiet_advancer(store=store, rng=AgingOnlyRNG(3), telemetry=telemetry).advance(
        make_state(actors=actors)
    )

    assert [actor_id for actor_id, _ in store.updates] == ["a1", "a3"]
    assert result.failed_actor_ids == ["a2"]
    assert result.state.actor("a2").age == 31
    telemetry.flush()
    assert telemetry.get_error_summary()["actor_persistence"] == 1


@pytest.mark.asyncio
async def test_text_failures_fall_back_to_local_templates(tmp_path):
    telemetry = TelemetryCollector(tmp_path / "telemetry.db")
    headlines = LocalTextGenerator().headlines

    result = await quiet_advancer(text=BrokenText(), telemetry=telemetry).advance(make_state())

    gossip = [event.message for event in result.events if event.type == EventType.GOSSIP]
    assert len(gossip) == 1
    assert gossip[0].removeprefix("GOSSIP: ") in headlines
    assert len(result.state.market_scripts) == 3
    telemetry.flush()
    assert telemetry.get_error_summary()["text_generation"] == 2


@pytest.mark.asyncio
async def test_slow_text_times_out_to_fallback():
    settings = replace(get_settings(), text_timeout_seconds=0.01)

    result = await quiet_advancer(text=SlowText(), settings=settings).advance(make_state())

    gossip = [event.message for event in result.events if event.type == EventType.GOSSIP]
    assert gossip and gossip[0] != "GOSSIP: too late"
    assert len(result.state.market_scripts) == 3


@pytest.mark.asyncio
async def test_release_pays_out_and_frees_cast():
    actors = [
        make_actor("a1", status=ActorStatus.IN_PRODUCTION),
        make_actor("a2", status=ActorStatus.IN_PRODUCTION),
    ]
    contract = Contract(
        id="c1",
        actor_id="a1",
        studio_id=PLAYER_ID,
        start_month=1,
        start_year=2003,
        duration_months=12,
        monthly_salary=50_000,
    )
    store = MemoryStore(actors, contracts={"a1": contract})
    movie = Movie(
        id="m1",
        script_id="s9",
        studio_id=PLAYER_ID,
        title="Test Picture",
        genre=Genre.DRAMA,
        cast=["a1", "a2"],
        production_budget=2_000_000,
        marketing_budget=1_000_000,
        status=ProjectStatus.MARKETING,
        progress=90,
        quality=60,
    )
    state = make_state(actors=actors, projects=[movie], balance=1_000_000, reputation=30)

    result = await quiet_advancer(store=store).advance(state)

    new_state = result.state
    [released] = result.released
    assert released.status == ProjectStatus.RELEASED
    assert released.progress == 100
    # 60 + 0.4 * 50 average skill, no genre match, no chemistry, mid budget
    assert released.quality == pytest.approx(80)
    assert released.revenue > 0
    assert released.reviews == ["Review of Test Picture"]
    assert (released.release_month, released.release_year) == (6, 2003)
    assert new_state.balance == 1_000_000 + released.revenue
    assert new_state.reputation == 30 + math.floor(released.quality / 10)
    assert new_state.actor("a1").status == ActorStatus.ON_HIATUS
    assert new_state.actor("a2").status == ActorStatus.AVAILABLE
    assert ("a1", {"status": "On Hiatus"}) in store.updates
    assert ("a2", {"status": "Available"}) in store.updates
    release_events = [event for event in result.events if event.message.startswith("RELEASE:")]
    assert release_events[0].type == EventType.GOOD
    assert release_events[0].message == (
        f'RELEASE: "Test Picture" hits theaters! Opening gross ${released.revenue:,}.'
    )


@pytest.mark.asyncio
async def test_phase_change_is_reported():
    movie = Movie(
        id="m2",
        script_id="s2",
        studio_id=PLAYER_ID,
        title="Slow Burn",
        genre=Genre.HORROR,
        status=ProjectStatus.PRE_PRODUCTION,
    )

    result = await quiet_advancer().advance(make_state(projects=[movie]))

    assert result.state.project("m2").status == ProjectStatus.FILMING
    assert any(event.message == 'PHASE: "Slow Burn" moves into Filming.' for event in result.events)


@pytest.mark.asyncio
async def test_rival_projects_are_not_advanced():
    movie = Movie(
        id="rv",
        script_id="ai-script",
        studio_id="r1",
        title="Rival Thing",
        genre=Genre.ACTION,
        status=ProjectStatus.FILMING,
    )

    result = await quiet_advancer().advance(make_state(projects=[movie]))

    assert result.state.project("rv").status == ProjectStatus.FILMING
    assert result.released == []


@pytest.mark.asyncio
async def test_awards_held_in_ceremony_month():
    projects = [
        Movie(
            id=f"p{index}",
            script_id=f"s{index}",
            studio_id=PLAYER_ID if index == 0 else "r1",
            title=f"Prestige {index}",
            genre=Genre.DRAMA,
            status=ProjectStatus.RELEASED,
            progress=100,
            quality=70 + index,
            release_month=8,
            release_year=2003,
        )
        for index in range(3)
    ]
    state = make_state(month=1, year=2004, projects=projects)

    result = await quiet_advancer().advance(state)

    assert result.state.month == 2
    assert result.ceremony is not None
    assert result.ceremony.year == 2003
    assert any(event.message.startswith("AWARDS:") for event in result.events)


@pytest.mark.asyncio
async def test_advance_month_wrapper_returns_state():
    state = make_state(month=3)

    new_state = await advance_month(state, text=CannedText(), rng=NeutralRNG())

    assert isinstance(new_state, GameState)
    assert new_state.month == 4


@pytest.mark.parametrize(
    "event_type, expected",
    [
        (LifecycleEventType.DEATH, EventType.BAD),
        (LifecycleEventType.SCANDAL, EventType.BAD),
        (LifecycleEventType.DIVORCE, EventType.BAD),
        (LifecycleEventType.AWARD_WIN, EventType.GOOD),
        (LifecycleEventType.BREAKOUT_ROLE, EventType.GOOD),
        (LifecycleEventType.MARRIAGE, EventType.GOSSIP),
        (LifecycleEventType.RETIREMENT, EventType.GOSSIP),
        (LifecycleEventType.REHAB, EventType.GOSSIP),
    ],
)
def test_lifecycle_event_type_mapping(event_type, expected):
    assert lifecycle_event_type(event_type) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", range(3))
async def test_full_world_year_keeps_invariants(seed):
    from studio_mogul.world import WorldRepository

    rng = DeterministicRNG(seed)
    state = WorldRepository().new_game(get_settings(), rng, studio_name="Seeded")
    advancer = MonthlyAdvancer(text=LocalTextGenerator(rng), rng=rng)
    for _ in range(14):
        state = (await advancer.advance(state)).state

    assert (state.month, state.year) == (3, 2004)
    for actor in state.actors:
        assert 0 <= actor.skill <= 100
        assert 0 <= actor.reputation <= 100
    assert all(movie.progress <= 100 for movie in state.projects)
