"""Configuration loading utilities for Studio Mogul."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml


DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"
DEFAULT_STATE_DB = Path(os.getenv("STUDIO_MOGUL_DB", "studio_mogul.sqlite"))


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    start_year: int
    start_month: int
    initial_balance: int
    initial_reputation: int
    production_event_chance: float
    rival_active_min: int
    rival_active_max: int
    rival_release_chance: float
    raving_threshold: float
    counter_bid_chance: float
    counter_bid_min_raise: int
    counter_bid_max_raise: int
    transfer_relationship_bonus: int
    market_script_count: int
    script_base_cost_min: int
    script_base_cost_max: int
    script_quality_min: float
    script_quality_max: float
    awards_enabled: bool
    awards_ceremony_month: int
    awards_min_quality: float
    awards_nominees_per_category: int
    awards_min_eligible_movies: int
    text_timeout_seconds: float
    remote_headline_ratio: float

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        timeline = data.get("timeline", {})
        player = data.get("player", {})
        production = data.get("production", {})
        rivals = data.get("rivals", {})
        counter_bid = rivals.get("counter_bid", {})
        market = data.get("market", {})
        awards = data.get("awards", {})
        text = data.get("text_generation", {})
        return Settings(
            start_year=int(timeline.get("start_year", 2003)),
            start_month=int(timeline.get("start_month", 1)),
            initial_balance=int(player.get("initial_balance", 5_000_000)),
            initial_reputation=int(player.get("initial_reputation", 30)),
            production_event_chance=float(production.get("event_chance", 0.30)),
            rival_active_min=int(rivals.get("active_min", 3)),
            rival_active_max=int(rivals.get("active_max", 6)),
            rival_release_chance=float(rivals.get("release_chance", 0.60)),
            raving_threshold=float(rivals.get("raving_threshold", 70)),
            counter_bid_chance=float(counter_bid.get("chance", 0.60)),
            counter_bid_min_raise=int(counter_bid.get("min_raise", 20_000)),
            counter_bid_max_raise=int(counter_bid.get("max_raise", 100_000)),
            transfer_relationship_bonus=int(rivals.get("transfer_relationship_bonus", 10)),
            market_script_count=int(market.get("script_count", 3)),
            script_base_cost_min=int(market.get("base_cost_min", 150_000)),
            script_base_cost_max=int(market.get("base_cost_max", 1_000_000)),
            script_quality_min=float(market.get("quality_min", 45)),
            script_quality_max=float(market.get("quality_max", 90)),
            awards_enabled=bool(awards.get("enabled", True)),
            awards_ceremony_month=int(awards.get("ceremony_month", 2)),
            awards_min_quality=float(awards.get("min_quality", 50)),
            awards_nominees_per_category=int(awards.get("nominees_per_category", 5)),
            awards_min_eligible_movies=int(awards.get("min_eligible_movies", 3)),
            text_timeout_seconds=float(text.get("timeout_seconds", 8.0)),
            remote_headline_ratio=float(text.get("remote_headline_ratio", 0.2)),
        )


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_SETTINGS_PATH
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        with self._path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        self._cache = Settings.from_dict(data)
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


__all__ = ["Settings", "SettingsLoader", "get_settings", "DEFAULT_STATE_DB"]
