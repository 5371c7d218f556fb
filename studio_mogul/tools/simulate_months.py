"""Run a save forward a number of months and summarise what happened."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from collections import Counter
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..awards import player_award_count
from ..config import DEFAULT_STATE_DB, Settings, get_settings
from ..errors import UnknownEntityError
from ..models import PLAYER_ID
from ..rng import DeterministicRNG
from ..service import StudioService
from ..telemetry import TelemetryCollector
from ..text_generation import LocalTextGenerator


def _apply_settings_overrides(settings: Settings, overrides: Dict[str, Any]) -> Settings:
    valid_overrides = {key: value for key, value in overrides.items() if hasattr(settings, key)}
    if not valid_overrides:
        return settings
    return replace(settings, **valid_overrides)


async def run_simulation(
    *,
    db_path: Path,
    save_id: str,
    months: int,
    seed: Optional[int] = None,
    settings_overrides: Optional[Dict[str, Any]] = None,
    output_dir: Optional[Path] = None,
) -> Dict[str, Any]:
    """Advance ``save_id`` month by month, creating it first when missing.

    Text comes from the local generator so runs are repeatable for a seed.
    """

    rng = DeterministicRNG(seed) if seed is not None else DeterministicRNG.from_entropy()
    settings = _apply_settings_overrides(get_settings(), settings_overrides or {})
    telemetry = TelemetryCollector(db_path.with_suffix(".telemetry.db"))
    service = StudioService(
        db_path,
        settings=settings,
        text_generator=LocalTextGenerator(rng),
        telemetry=telemetry,
        rng=rng,
    )
    try:
        service.load(save_id)
    except UnknownEntityError:
        service.new_game(save_id, studio_name="Simulation Pictures")

    timeline: List[Dict[str, Any]] = []
    event_types: Counter = Counter()
    for _ in range(months):
        result = await service.advance_month(save_id)
        state = result.state
        event_types.update(event.type.value for event in result.events)
        timeline.append(
            {
                "month": state.month,
                "year": state.year,
                "balance": state.balance,
                "reputation": state.reputation,
                "events": len(result.events),
                "releases": [movie.title for movie in result.released],
                "lifecycle": [event.type.value for event in result.lifecycle_events],
                "failed_actor_ids": result.failed_actor_ids,
            }
        )
    telemetry.flush()

    final = service.load(save_id)
    wins, nominations = player_award_count(final.ceremonies)
    result = {
        "save_id": save_id,
        "months": months,
        "seed": rng.seed,
        "timeline": timeline,
        "summary": {
            "month": final.month,
            "year": final.year,
            "balance": final.balance,
            "reputation": final.reputation,
            "active_actors": sum(1 for actor in final.actors if actor.is_active),
            "player_releases": sum(1 for movie in final.player_projects() if movie.is_released),
            "rival_releases": sum(1 for movie in final.projects if movie.studio_id != PLAYER_ID),
            "event_types": dict(event_types),
            "award_wins": wins,
            "award_nominations": nominations,
            "advance_telemetry": telemetry.get_advance_summary(),
        },
    }

    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        output_path = output_dir / f"simulation_{save_id}_{timestamp}.json"
        output_path.write_text(json.dumps(result, indent=2), encoding="utf-8")
        result["output_path"] = str(output_path)
    return result


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Advance a studio save by several months.")
    parser.add_argument(
        "--db",
        type=Path,
        default=DEFAULT_STATE_DB,
        help=f"SQLite database holding the saves (default: {DEFAULT_STATE_DB}).",
    )
    parser.add_argument("--save", default="default", help="Save identifier to advance.")
    parser.add_argument("--months", type=int, default=12, help="Number of months to simulate.")
    parser.add_argument("--seed", type=int, help="Seed for repeatable runs.")
    parser.add_argument("--config", type=Path, help="JSON file with settings overrides.")
    parser.add_argument("--output-dir", type=Path, help="Write the full report here.")
    parser.add_argument("--verbose", action="store_true", help="Log engine activity.")
    return parser.parse_args()


def main() -> None:  # pragma: no cover - CLI entry point
    args = _parse_args()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    overrides = json.loads(args.config.read_text()) if args.config else {}
    result = asyncio.run(
        run_simulation(
            db_path=args.db,
            save_id=args.save,
            months=args.months,
            seed=args.seed,
            settings_overrides=overrides,
            output_dir=args.output_dir,
        )
    )
    print(json.dumps(result["summary"], indent=2))


if __name__ == "__main__":
    main()
