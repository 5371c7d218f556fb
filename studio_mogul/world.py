"""World seeding: rival studios, seed talent and procedurally generated actors."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import yaml

from .config import Settings
from .models import Actor, ActorTier, GameState, Genre, Personality, RivalStudio, Script
from .rng import DeterministicRNG
from .serialization import actor_from_dict, script_from_dict

_DATA_PATH = Path(__file__).parent / "data"

DEFAULT_GENERATED_ACTORS = 40


class WorldRepository:
    """Handles world templates and deterministic generation."""

    def __init__(self, data_path: Path | None = None) -> None:
        self._path = data_path or _DATA_PATH
        data = self._load_yaml("world.yaml")
        self.studio_names: List[str] = list(data["studio_names"])
        self.rival_titles: List[str] = list(data["rival_titles"])
        self._seed_actors = data["seed_actors"]
        self._seed_scripts = data["seed_scripts"]
        self._namebanks: Dict = data["namebanks"]
        self._traits: List[str] = list(data["traits"])
        self._bio_templates: List[str] = list(data["bio_templates"])
        self._origins: List[str] = list(data["origins"])
        self._tiers: Dict[ActorTier, Dict] = {
            ActorTier(name): spec for name, spec in data["tiers"].items()
        }

    def _load_yaml(self, name: str) -> Dict:
        with (self._path / name).open("r", encoding="utf-8") as fh:
            return yaml.safe_load(fh)

    def seed_actors(self) -> List[Actor]:
        return [actor_from_dict(item) for item in self._seed_actors]

    def seed_scripts(self) -> List[Script]:
        return [script_from_dict(dict(item)) for item in self._seed_scripts]

    def build_rivals(self, rng: DeterministicRNG) -> List[RivalStudio]:
        return [
            RivalStudio(
                id=f"r{index}",
                name=name,
                reputation=30 + rng.randrange(60),
                balance=5_000_000 + rng.randrange(95_000_000),
                color=f"hsl({index * 12}, 70%, 40%)",
                personality=rng.choice(list(Personality)),
            )
            for index, name in enumerate(self.studio_names)
        ]

    def _pick_tier(self, rng: DeterministicRNG) -> ActorTier:
        tiers = list(self._tiers)
        weights = [self._tiers[tier]["weight"] for tier in tiers]
        roll = rng.uniform(0, sum(weights))
        for tier, weight in zip(tiers, weights):
            roll -= weight
            if roll <= 0:
                return tier
        return tiers[-1]

    def generate_actor(self, rng: DeterministicRNG, identifier: str) -> Actor:
        gender = rng.choice(["Male", "Female"])
        given = rng.choice(self._namebanks[gender]["given"])
        surname = rng.choice(self._namebanks["surnames"])
        tier = self._pick_tier(rng)
        spec = self._tiers[tier]
        genres = rng.sample(list(Genre), 1 + rng.randint(0, 1))
        bio = rng.choice(self._bio_templates).format(
            origin=rng.choice(self._origins),
            genre=genres[0].value.lower(),
        )
        return Actor(
            id=identifier,
            name=f"{given} {surname}",
            age=rng.randint(19, 72),
            gender=gender,
            tier=tier,
            salary=rng.randint(*spec["salary"]),
            reputation=rng.randint(*spec["reputation"]),
            skill=rng.randint(*spec["skill"]),
            genres=genres,
            bio=bio,
            personality=rng.sample(self._traits, 2),
        )

    def generate_actors(
        self, rng: DeterministicRNG, count: int, start_index: int = 1
    ) -> List[Actor]:
        actors = [self.generate_actor(rng, f"g{start_index + i}") for i in range(count)]
        # Sprinkle a few pre-existing friendships and grudges
        for actor in actors:
            if rng.chance(0.3):
                other = rng.choice(actors)
                if other.id != actor.id:
                    delta = rng.randint(-40, 40)
                    actor.adjust_relationship(other.id, delta)
                    other.adjust_relationship(actor.id, delta)
        return actors

    def new_game(
        self,
        settings: Settings,
        rng: DeterministicRNG,
        *,
        player_name: str = "",
        studio_name: str = "",
        generated_actors: int = DEFAULT_GENERATED_ACTORS,
    ) -> GameState:
        """Opening state: seed talent, generated talent, rivals and seed scripts."""

        actors = self.seed_actors() + self.generate_actors(rng, generated_actors)
        return GameState(
            month=settings.start_month,
            year=settings.start_year,
            balance=settings.initial_balance,
            reputation=settings.initial_reputation,
            actors=actors,
            market_scripts=self.seed_scripts(),
            rivals=self.build_rivals(rng),
            player_name=player_name,
            studio_name=studio_name,
        )


__all__ = ["WorldRepository", "DEFAULT_GENERATED_ACTORS"]
