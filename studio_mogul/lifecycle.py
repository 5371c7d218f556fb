"""Actor lifecycle simulation: monthly life events and tier drift."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import yaml

from .models import (
    SALARY_FLOOR,
    Actor,
    ActorStatus,
    ActorTier,
    LifecycleEvent,
    LifecycleEventType,
    LifecycleImpact,
    clamp,
)
from .rng import DeterministicRNG

logger = logging.getLogger(__name__)

_DATA_PATH = Path(__file__).parent / "data"

ProbabilityFn = Callable[[Actor], float]

_INACTIVE = (ActorStatus.RETIRED, ActorStatus.DECEASED)


def _death(actor: Actor) -> float:
    if actor.status == ActorStatus.DECEASED:
        return 0.0
    if actor.age < 40:
        return 0.0005
    if actor.age < 60:
        return 0.002
    if actor.age < 75:
        return 0.008
    return 0.02


def _retirement(actor: Actor) -> float:
    if actor.status in _INACTIVE:
        return 0.0
    if actor.age < 50:
        return 0.001
    if actor.age < 65:
        return 0.01
    if actor.age < 75:
        return 0.03
    return 0.06


def _marriage(actor: Actor) -> float:
    if actor.status in _INACTIVE:
        return 0.0
    if actor.age < 25:
        return 0.02
    if actor.age < 40:
        return 0.015
    return 0.005


def _divorce(actor: Actor) -> float:
    married = any(value > 50 for value in actor.relationships.values())
    if not married or actor.status == ActorStatus.DECEASED:
        return 0.0
    return 0.008


def _scandal(actor: Actor) -> float:
    if actor.status in _INACTIVE:
        return 0.0
    # Higher tiers draw more scrutiny
    if actor.tier == ActorTier.A_LIST:
        return 0.005 * 2
    if actor.tier == ActorTier.B_LIST:
        return 0.005 * 1.5
    return 0.005


def _comeback(actor: Actor) -> float:
    if actor.status in _INACTIVE or actor.reputation > 60:
        return 0.0
    return 0.02


def _award_nomination(actor: Actor) -> float:
    if actor.status in _INACTIVE:
        return 0.0
    return 0.01 * actor.skill / 100


def _award_win(actor: Actor) -> float:
    if actor.status in _INACTIVE:
        return 0.0
    return 0.003 * actor.skill / 100


def _personal_issues(actor: Actor) -> float:
    if actor.status in _INACTIVE or actor.status == ActorStatus.ON_HIATUS:
        return 0.0
    return 0.008


def _rehab(actor: Actor) -> float:
    if actor.status != ActorStatus.ON_HIATUS:
        return 0.0
    return 0.1


def _career_slump(actor: Actor) -> float:
    if actor.status in _INACTIVE or actor.reputation < 40:
        return 0.0
    return 0.008


def _breakout_role(actor: Actor) -> float:
    if actor.status in _INACTIVE:
        return 0.0
    if actor.tier == ActorTier.NEWCOMER:
        return 0.005 * 3
    if actor.tier == ActorTier.C_LIST:
        return 0.005 * 2
    return 0.005


def _feud(actor: Actor) -> float:
    if actor.status in _INACTIVE:
        return 0.0
    return 0.01


def _reconciliation(actor: Actor) -> float:
    feuding = any(value < -30 for value in actor.relationships.values())
    if not feuding or actor.status == ActorStatus.DECEASED:
        return 0.0
    return 0.015


def _aging(actor: Actor) -> float:
    if actor.status == ActorStatus.DECEASED:
        return 0.0
    return 1.0 / 12


# Iteration order matters: later checks see the effects of earlier ones.
EVENT_PROBABILITIES: Dict[LifecycleEventType, ProbabilityFn] = {
    LifecycleEventType.DEATH: _death,
    LifecycleEventType.RETIREMENT: _retirement,
    LifecycleEventType.MARRIAGE: _marriage,
    LifecycleEventType.DIVORCE: _divorce,
    LifecycleEventType.SCANDAL: _scandal,
    LifecycleEventType.COMEBACK: _comeback,
    LifecycleEventType.AWARD_NOMINATION: _award_nomination,
    LifecycleEventType.AWARD_WIN: _award_win,
    LifecycleEventType.PERSONAL_ISSUES: _personal_issues,
    LifecycleEventType.REHAB: _rehab,
    LifecycleEventType.CAREER_SLUMP: _career_slump,
    LifecycleEventType.BREAKOUT_ROLE: _breakout_role,
    LifecycleEventType.FEUD: _feud,
    LifecycleEventType.RECONCILIATION: _reconciliation,
    LifecycleEventType.AGING: _aging,
}


@dataclass(frozen=True)
class _Effect:
    reputation: int = 0
    skill: int = 0
    salary_ratio: float = 0.0
    status: Optional[ActorStatus] = None
    age: int = 0
    relationship: int = 0


_EFFECTS: Dict[LifecycleEventType, _Effect] = {
    LifecycleEventType.DEATH: _Effect(status=ActorStatus.DECEASED),
    LifecycleEventType.RETIREMENT: _Effect(status=ActorStatus.RETIRED),
    LifecycleEventType.MARRIAGE: _Effect(reputation=5, relationship=60),
    LifecycleEventType.DIVORCE: _Effect(reputation=-8, skill=-8, relationship=-80),
    LifecycleEventType.SCANDAL: _Effect(reputation=-15, skill=-10, salary_ratio=-0.15),
    LifecycleEventType.COMEBACK: _Effect(reputation=20, skill=5, salary_ratio=0.20),
    LifecycleEventType.AWARD_NOMINATION: _Effect(reputation=8, skill=3, salary_ratio=0.10),
    LifecycleEventType.AWARD_WIN: _Effect(reputation=15, skill=5, salary_ratio=0.30),
    LifecycleEventType.PERSONAL_ISSUES: _Effect(status=ActorStatus.ON_HIATUS, skill=-5),
    LifecycleEventType.REHAB: _Effect(status=ActorStatus.AVAILABLE, reputation=3, skill=8),
    LifecycleEventType.CAREER_SLUMP: _Effect(reputation=-10, skill=-6, salary_ratio=-0.15),
    LifecycleEventType.BREAKOUT_ROLE: _Effect(reputation=12, skill=8, salary_ratio=0.25),
    LifecycleEventType.FEUD: _Effect(reputation=-5, skill=-4, relationship=-40),
    LifecycleEventType.RECONCILIATION: _Effect(reputation=3, skill=3, relationship=50),
    LifecycleEventType.AGING: _Effect(age=1),
}

TIER_SALARY_MULTIPLIERS: Dict[ActorTier, float] = {
    ActorTier.A_LIST: 2.5,
    ActorTier.B_LIST: 1.5,
    ActorTier.C_LIST: 1.0,
    ActorTier.INDIE_DARLING: 0.8,
    ActorTier.NEWCOMER: 0.5,
}


class LifecycleText:
    """Flavor tables for lifecycle messages, loaded from YAML."""

    def __init__(self, data_path: Path | None = None) -> None:
        self._path = data_path or _DATA_PATH
        data = self._load_yaml("lifecycle.yaml")
        self.scandal_types: List[str] = list(data["scandal_types"])
        self.award_names: List[str] = list(data["award_names"])
        self._templates: Dict[str, Dict[str, str]] = dict(data["templates"])

    def _load_yaml(self, name: str) -> Dict:
        with (self._path / name).open("r", encoding="utf-8") as fh:
            return yaml.safe_load(fh)

    def render(self, event_type: LifecycleEventType, **values: object) -> Tuple[str, Optional[str]]:
        template = self._templates.get(event_type.value)
        if not template:
            return "", None
        message = template["message"].format(**values)
        gossip = template.get("gossip")
        return message, gossip.format(**values) if gossip else None


class LifecycleSimulator:
    """Runs one month of life events over a roster."""

    def __init__(self, text: LifecycleText | None = None) -> None:
        self._text = text or LifecycleText()

    def process(
        self,
        actors: Sequence[Actor],
        month: int,
        rng: DeterministicRNG,
    ) -> Tuple[List[Actor], List[LifecycleEvent]]:
        """Return updated copies of ``actors`` and the events that fired.

        The input actors are left untouched.
        """

        updated = [copy.deepcopy(actor) for actor in actors]
        index = {actor.id: actor for actor in updated}
        events: List[LifecycleEvent] = []
        for actor in updated:
            if actor.status == ActorStatus.DECEASED:
                continue
            for event_type, probability in EVENT_PROBABILITIES.items():
                if not rng.chance(probability(actor)):
                    continue
                event = self._generate(actor, event_type, month, updated, rng)
                if event is None:
                    continue
                apply_event(actor, event, index)
                events.append(event)
        return updated, events

    def _generate(
        self,
        actor: Actor,
        event_type: LifecycleEventType,
        month: int,
        roster: Sequence[Actor],
        rng: DeterministicRNG,
    ) -> Optional[LifecycleEvent]:
        effect = _EFFECTS[event_type]
        partner = self._find_partner(actor, event_type, roster, rng)
        if effect.relationship and partner is None:
            return None

        values: Dict[str, object] = {"name": actor.name, "age": actor.age}
        if partner is not None:
            values["partner"] = partner.name
        if event_type == LifecycleEventType.SCANDAL:
            values["scandal"] = rng.choice(self._text.scandal_types)
        if event_type in (LifecycleEventType.AWARD_NOMINATION, LifecycleEventType.AWARD_WIN):
            values["award"] = rng.choice(self._text.award_names)

        message, gossip = ("", None)
        if event_type != LifecycleEventType.AGING:
            message, gossip = self._text.render(event_type, **values)

        impact = LifecycleImpact(
            reputation=effect.reputation,
            skill=effect.skill,
            salary=actor.salary * effect.salary_ratio,
            status=effect.status,
            age=effect.age,
            relationships={partner.id: effect.relationship} if partner is not None else {},
        )
        return LifecycleEvent(
            id=rng.token("life"),
            actor_id=actor.id,
            actor_name=actor.name,
            type=event_type,
            message=message,
            month=month,
            impact=impact,
            gossip=gossip,
        )

    @staticmethod
    def _find_partner(
        actor: Actor,
        event_type: LifecycleEventType,
        roster: Sequence[Actor],
        rng: DeterministicRNG,
    ) -> Optional[Actor]:
        by_id = {other.id: other for other in roster}
        if event_type == LifecycleEventType.MARRIAGE:
            candidates = [
                other
                for other in roster
                if other.id != actor.id
                and other.is_active
                and abs(other.age - actor.age) < 20
            ]
        elif event_type == LifecycleEventType.FEUD:
            candidates = [
                other
                for other in roster
                if other.id != actor.id
                and other.status != ActorStatus.DECEASED
                and actor.relationship_with(other.id) > -50
            ]
        elif event_type == LifecycleEventType.DIVORCE:
            candidates = [
                by_id[other_id]
                for other_id, value in actor.relationships.items()
                if value > 50 and other_id in by_id
            ]
        elif event_type == LifecycleEventType.RECONCILIATION:
            candidates = [
                by_id[other_id]
                for other_id, value in actor.relationships.items()
                if value < -30 and other_id in by_id
            ]
        else:
            return None
        if not candidates:
            return None
        return rng.choice(candidates)


def apply_event(actor: Actor, event: LifecycleEvent, roster: Dict[str, Actor]) -> None:
    """Apply ``event``'s impact to ``actor`` and to any relationship partner."""

    impact = event.impact
    if impact.status is not None:
        actor.status = impact.status
    if impact.reputation:
        actor.reputation = int(clamp(actor.reputation + impact.reputation, 0, 100))
    if impact.skill:
        actor.skill = int(clamp(actor.skill + impact.skill, 0, 100))
    if impact.salary:
        actor.salary = max(SALARY_FLOOR, int(round(actor.salary + impact.salary)))
    if impact.age:
        actor.age += impact.age
    for other_id, delta in impact.relationships.items():
        actor.adjust_relationship(other_id, delta)
        other = roster.get(other_id)
        if other is not None:
            other.adjust_relationship(actor.id, delta)
    if event.gossip:
        actor.add_gossip(event.gossip)


def _next_tier(actor: Actor) -> ActorTier:
    reputation = actor.reputation
    tier = actor.tier
    if reputation >= 90 and tier != ActorTier.A_LIST:
        return ActorTier.A_LIST
    if 75 <= reputation < 90 and tier == ActorTier.C_LIST:
        return ActorTier.B_LIST
    if 75 <= reputation < 90 and tier == ActorTier.NEWCOMER:
        return ActorTier.C_LIST
    if reputation < 40 and tier == ActorTier.A_LIST:
        return ActorTier.B_LIST
    if reputation < 30 and tier == ActorTier.B_LIST:
        return ActorTier.C_LIST
    return tier


def recalculate_tiers(actors: Sequence[Actor]) -> List[Actor]:
    """Promote or demote active actors by reputation, rescaling salaries."""

    result: List[Actor] = []
    for actor in actors:
        if not actor.is_active:
            result.append(actor)
            continue
        new_tier = _next_tier(actor)
        if new_tier == actor.tier:
            result.append(actor)
            continue
        ratio = TIER_SALARY_MULTIPLIERS[new_tier] / TIER_SALARY_MULTIPLIERS[actor.tier]
        salary = max(SALARY_FLOOR, int(round(actor.salary * ratio)))
        logger.debug("Tier change for %s: %s -> %s", actor.name, actor.tier.value, new_tier.value)
        result.append(replace(actor, tier=new_tier, salary=salary))
    return result


def process_actor_lifecycle(
    actors: Sequence[Actor],
    month: int,
    rng: DeterministicRNG,
    simulator: LifecycleSimulator | None = None,
) -> Tuple[List[Actor], List[LifecycleEvent]]:
    """Run the lifecycle pass followed by tier recalculation."""

    simulator = simulator or LifecycleSimulator()
    updated, events = simulator.process(actors, month, rng)
    return recalculate_tiers(updated), events


__all__ = [
    "EVENT_PROBABILITIES",
    "TIER_SALARY_MULTIPLIERS",
    "LifecycleText",
    "LifecycleSimulator",
    "apply_event",
    "recalculate_tiers",
    "process_actor_lifecycle",
]
