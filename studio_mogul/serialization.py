"""Conversion between domain dataclasses and JSON-friendly dicts."""
from __future__ import annotations

import json
from dataclasses import asdict
from enum import Enum
from typing import Any, Dict, List

from .models import (
    Actor,
    AwardCategory,
    AwardNomination,
    AwardsCeremony,
    Contract,
    GameEvent,
    GameState,
    Movie,
    ProductionEvent,
    ProductionEventKind,
    ProjectStatus,
    RivalStudio,
    Script,
    StudioMessage,
)


def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def to_dict(obj) -> Dict[str, Any]:
    """``asdict`` with enum members replaced by their values."""

    return _plain(asdict(obj))


def actor_from_dict(data: Dict[str, Any]) -> Actor:
    return Actor(
        id=data["id"],
        name=data["name"],
        age=int(data["age"]),
        gender=data.get("gender", ""),
        tier=data["tier"],
        salary=int(data["salary"]),
        reputation=int(data["reputation"]),
        skill=int(data["skill"]),
        genres=list(data.get("genres", [])),
        status=data.get("status", "Available"),
        relationships=dict(data.get("relationships", {})),
        gossip=list(data.get("gossip", [])),
        bio=data.get("bio", ""),
        personality=list(data.get("personality", [])),
    )


def script_from_dict(data: Dict[str, Any]) -> Script:
    return Script(**data)


def production_event_from_dict(data: Dict[str, Any]) -> ProductionEvent:
    event = ProductionEvent(**data)
    event.phase = ProjectStatus(event.phase)
    event.kind = ProductionEventKind(event.kind)
    return event


def movie_from_dict(data: Dict[str, Any]) -> Movie:
    fields = dict(data)
    fields["production_events"] = [
        production_event_from_dict(item) for item in data.get("production_events", [])
    ]
    return Movie(**fields)


def rival_from_dict(data: Dict[str, Any]) -> RivalStudio:
    return RivalStudio(**data)


def event_from_dict(data: Dict[str, Any]) -> GameEvent:
    return GameEvent(**data)


def contract_from_dict(data: Dict[str, Any]) -> Contract:
    return Contract(**data)


def message_from_dict(data: Dict[str, Any]) -> StudioMessage:
    return StudioMessage(**data)


def ceremony_from_dict(data: Dict[str, Any]) -> AwardsCeremony:
    nominations: List[AwardNomination] = []
    for item in data.get("nominations", []):
        nomination = AwardNomination(**item)
        nomination.category = AwardCategory(nomination.category)
        nominations.append(nomination)
    return AwardsCeremony(
        id=data["id"],
        year=int(data["year"]),
        name=data["name"],
        nominations=nominations,
        completed=bool(data.get("completed", False)),
    )


def state_to_dict(state: GameState) -> Dict[str, Any]:
    return to_dict(state)


def state_from_dict(data: Dict[str, Any]) -> GameState:
    return GameState(
        month=int(data["month"]),
        year=int(data["year"]),
        balance=int(data["balance"]),
        reputation=int(data["reputation"]),
        actors=[actor_from_dict(item) for item in data.get("actors", [])],
        market_scripts=[script_from_dict(item) for item in data.get("market_scripts", [])],
        owned_scripts=[script_from_dict(item) for item in data.get("owned_scripts", [])],
        projects=[movie_from_dict(item) for item in data.get("projects", [])],
        rivals=[rival_from_dict(item) for item in data.get("rivals", [])],
        events=[event_from_dict(item) for item in data.get("events", [])],
        player_name=data.get("player_name", ""),
        studio_name=data.get("studio_name", ""),
        messages=[message_from_dict(item) for item in data.get("messages", [])],
        ceremonies=[ceremony_from_dict(item) for item in data.get("ceremonies", [])],
        version=int(data.get("version", 0)),
    )


def dumps_state(state: GameState) -> str:
    return json.dumps(state_to_dict(state))


def loads_state(payload: str) -> GameState:
    return state_from_dict(json.loads(payload))


__all__ = [
    "to_dict",
    "actor_from_dict",
    "script_from_dict",
    "production_event_from_dict",
    "movie_from_dict",
    "rival_from_dict",
    "event_from_dict",
    "contract_from_dict",
    "message_from_dict",
    "ceremony_from_dict",
    "state_to_dict",
    "state_from_dict",
    "dumps_state",
    "loads_state",
]
