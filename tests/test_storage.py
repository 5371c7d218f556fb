"""Tests for SQLite persistence of actors, contracts and saves."""
from __future__ import annotations

import pytest

from studio_mogul.config import get_settings
from studio_mogul.errors import ActorUnavailableError, StaleSaveError, StoreError, UnknownEntityError
from studio_mogul.models import ActorStatus, Contract, ContractStatus, EventType, GameEvent
from studio_mogul.rng import DeterministicRNG
from studio_mogul.storage import DeferredActorWrites, StudioStore
from studio_mogul.world import WorldRepository


def make_contract(contract_id="c1", actor_id="a1", month=1, year=2003, duration=3):
    return Contract(
        id=contract_id,
        actor_id=actor_id,
        studio_id="player",
        start_month=month,
        start_year=year,
        duration_months=duration,
        monthly_salary=40_000,
        signing_bonus=100_000,
    )


@pytest.fixture
def store(tmp_path):
    store = StudioStore(tmp_path / "studio.sqlite", save_id="alpha")
    store.upsert_actors(WorldRepository().seed_actors())
    return store


def test_actor_roster_round_trip(store):
    actors = store.list_actors()

    assert [actor.id for actor in actors] == ["a1", "a2", "a3", "a4", "a5"]
    assert store.get_actor("a1").relationships == {"a2": 25, "a3": 10}
    assert store.get_actor("nobody") is None


def test_saves_do_not_share_rosters(store):
    other = store.for_save("beta")

    assert other.list_actors() == []


def test_partial_update_keeps_other_fields(store):
    store.update_actor("a1", {"age": 39, "status": "On Hiatus", "gossip": ["Seen at a diner"]})

    actor = store.get_actor("a1")
    assert actor.age == 39
    assert actor.status == ActorStatus.ON_HIATUS
    assert actor.gossip == ["Seen at a diner"]
    assert actor.name == "Brad Fitt"


def test_update_clamps_through_the_model(store):
    store.update_actor("a2", {"reputation": 180, "salary": 5})

    actor = store.get_actor("a2")
    assert actor.reputation == 100
    assert actor.salary == 10_000


def test_update_rejects_unknown_actor_and_fields(store):
    with pytest.raises(StoreError):
        store.update_actor("ghost", {"age": 50})
    with pytest.raises(StoreError):
        store.update_actor("a1", {"favourite_food": "pie"})


def test_deferred_writes_land_only_on_flush(store):
    pending = DeferredActorWrites(store)

    pending.update_actor("a1", {"age": 41})
    pending.update_actor("ghost", {"age": 50})
    pending.update_actor("a2", {"status": "On Hiatus"})

    assert store.get_actor("a1").age == 38
    assert [actor.id for actor in pending.list_actors()] == ["a1", "a2", "a3", "a4", "a5"]
    assert pending.flush() == ["ghost"]
    assert store.get_actor("a1").age == 41
    assert store.get_actor("a2").status == ActorStatus.ON_HIATUS
    assert pending.pending == []


def test_one_active_contract_per_actor(store):
    store.sign_contract(make_contract())

    with pytest.raises(ActorUnavailableError):
        store.sign_contract(make_contract("c2"))
    assert store.get_active_contract("a1").id == "c1"
    assert store.get_active_contract("a2") is None


def test_terminate_contract(store):
    store.sign_contract(make_contract())

    contract = store.terminate_contract("c1")

    assert contract.status == ContractStatus.TERMINATED
    assert store.get_active_contract("a1") is None
    with pytest.raises(UnknownEntityError):
        store.terminate_contract("missing")


def test_expire_contracts_after_term(store):
    store.sign_contract(make_contract("c1", "a1", month=11, year=2003, duration=3))
    store.sign_contract(make_contract("c2", "a2", month=1, year=2004, duration=12))

    assert store.expire_contracts(1, 2004) == []
    expired = store.expire_contracts(2, 2004)

    assert [contract.id for contract in expired] == ["c1"]
    assert store.get_active_contract("a1") is None
    assert [contract.id for contract in store.list_contracts(active_only=True)] == ["c2"]
    assert len(store.list_contracts(studio_id="player")) == 2


def test_contract_duration_must_be_supported():
    with pytest.raises(ValueError):
        make_contract(duration=5)


def new_state():
    return WorldRepository().new_game(get_settings(), DeterministicRNG(10), studio_name="Alpha Films")


def test_save_and_load_game(store):
    state = new_state()
    state.events.append(GameEvent(id="e1", month=1, message="Hello", type=EventType.AD))

    version = store.save_game(state)
    loaded = store.load_game()

    assert version == 1
    assert state.version == 1
    assert loaded == state
    assert loaded.events[-1].type == EventType.AD
    assert store.for_save("beta").load_game() is None


def test_stale_save_is_rejected(store):
    state = new_state()
    store.save_game(state)
    first = store.load_game()
    second = store.load_game()

    first.balance += 1
    store.save_game(first)
    second.balance -= 1

    with pytest.raises(StaleSaveError):
        store.save_game(second)
    assert store.load_game().balance == first.balance
    assert store.load_game().version == 2
    assert store.saved_version() == 2
    assert store.for_save("beta").saved_version() == 0


def test_list_saves(store):
    store.save_game(new_state())
    beta = store.for_save("beta")
    beta.save_game(new_state())

    saves = {entry["save_id"]: entry for entry in store.list_saves()}

    assert set(saves) == {"alpha", "beta"}
    assert saves["alpha"]["studio_name"] == "Alpha Films"
    assert saves["alpha"]["version"] == 1
