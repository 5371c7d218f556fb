"""SQLite persistence for actors, contracts and saved games."""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing
from dataclasses import fields as dataclass_fields
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .errors import ActorUnavailableError, StaleSaveError, StoreError, UnknownEntityError
from .models import Actor, Contract, ContractStatus, GameState
from .serialization import actor_from_dict, dumps_state, loads_state, to_dict

logger = logging.getLogger(__name__)

_ACTOR_FIELDS = {field.name for field in dataclass_fields(Actor)} - {"id"}

_DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS actors (
    save_id TEXT NOT NULL,
    id TEXT NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (save_id, id)
);
CREATE TABLE IF NOT EXISTS contracts (
    id TEXT PRIMARY KEY,
    save_id TEXT NOT NULL,
    actor_id TEXT NOT NULL,
    studio_id TEXT NOT NULL,
    start_month INTEGER NOT NULL,
    start_year INTEGER NOT NULL,
    duration_months INTEGER NOT NULL,
    monthly_salary INTEGER NOT NULL,
    signing_bonus INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_contracts_actor
    ON contracts (save_id, actor_id, status);
CREATE TABLE IF NOT EXISTS saves (
    id TEXT PRIMARY KEY,
    studio_name TEXT NOT NULL,
    month INTEGER NOT NULL,
    year INTEGER NOT NULL,
    version INTEGER NOT NULL,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_CONTRACT_COLUMNS = (
    "id, actor_id, studio_id, start_month, start_year, duration_months, "
    "monthly_salary, signing_bonus, status"
)


class ActorStore(Protocol):
    """What the monthly engine needs from persistence."""

    def list_actors(self) -> List[Actor]:
        ...

    def update_actor(self, actor_id: str, fields: Dict[str, Any]) -> None:
        ...

    def get_active_contract(self, actor_id: str) -> Optional[Contract]:
        ...


class DeferredActorWrites:
    """Reads go straight to ``store``; actor updates wait for :meth:`flush`."""

    def __init__(self, store: ActorStore) -> None:
        self._store = store
        self.pending: List[tuple] = []

    def list_actors(self) -> List[Actor]:
        return self._store.list_actors()

    def get_active_contract(self, actor_id: str) -> Optional[Contract]:
        return self._store.get_active_contract(actor_id)

    def update_actor(self, actor_id: str, fields: Dict[str, Any]) -> None:
        self.pending.append((actor_id, dict(fields)))

    def flush(self) -> List[str]:
        """Apply queued updates in order and return the ids that failed."""

        failed: List[str] = []
        pending, self.pending = self.pending, []
        for actor_id, fields in pending:
            try:
                self._store.update_actor(actor_id, fields)
            except (sqlite3.Error, StoreError):
                logger.exception("Failed to persist changes for actor %s", actor_id)
                if actor_id not in failed:
                    failed.append(actor_id)
        return failed


def _contract_from_row(row) -> Contract:
    return Contract(
        id=row[0],
        actor_id=row[1],
        studio_id=row[2],
        start_month=row[3],
        start_year=row[4],
        duration_months=row[5],
        monthly_salary=row[6],
        signing_bonus=row[7],
        status=row[8],
    )


class StudioStore:
    """Store for one save's actor roster, contracts and game snapshot.

    Every save shares the database file; rows are partitioned by ``save_id``.
    """

    def __init__(self, db_path: Path, save_id: str = "default") -> None:
        self._db_path = Path(db_path)
        self.save_id = save_id
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.executescript(_DB_SCHEMA)
            conn.commit()

    def for_save(self, save_id: str) -> "StudioStore":
        return StudioStore(self._db_path, save_id)

    # Actor roster ------------------------------------------------------
    def upsert_actor(self, actor: Actor) -> None:
        self.upsert_actors([actor])

    def upsert_actors(self, actors: Iterable[Actor]) -> None:
        rows = [(self.save_id, actor.id, json.dumps(to_dict(actor))) for actor in actors]
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.executemany("REPLACE INTO actors (save_id, id, data) VALUES (?, ?, ?)", rows)
            conn.commit()

    def get_actor(self, actor_id: str) -> Optional[Actor]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM actors WHERE save_id = ? AND id = ?",
                (self.save_id, actor_id),
            ).fetchone()
        if not row:
            return None
        return actor_from_dict(json.loads(row[0]))

    def list_actors(self) -> List[Actor]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(
                "SELECT data FROM actors WHERE save_id = ? ORDER BY rowid",
                (self.save_id,),
            ).fetchall()
        return [actor_from_dict(json.loads(row[0])) for row in rows]

    def update_actor(self, actor_id: str, fields: Dict[str, Any]) -> None:
        """Apply a partial update; ``fields`` maps attribute names to plain values."""

        unknown = set(fields) - _ACTOR_FIELDS
        if unknown:
            raise StoreError(f"Unknown actor fields: {', '.join(sorted(unknown))}")
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM actors WHERE save_id = ? AND id = ?",
                (self.save_id, actor_id),
            ).fetchone()
            if not row:
                raise StoreError(f"Unknown actor: {actor_id}")
            data = json.loads(row[0])
            data.update(fields)
            # Round-trip through the model so stored rows keep its invariants
            actor = actor_from_dict(data)
            conn.execute(
                "UPDATE actors SET data = ? WHERE save_id = ? AND id = ?",
                (json.dumps(to_dict(actor)), self.save_id, actor_id),
            )
            conn.commit()

    # Contracts ---------------------------------------------------------
    def get_active_contract(self, actor_id: str) -> Optional[Contract]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                f"SELECT {_CONTRACT_COLUMNS} FROM contracts "
                "WHERE save_id = ? AND actor_id = ? AND status = ?",
                (self.save_id, actor_id, ContractStatus.ACTIVE.value),
            ).fetchone()
        return _contract_from_row(row) if row else None

    def sign_contract(self, contract: Contract) -> None:
        """Persist a new active contract; an actor holds at most one."""

        with closing(sqlite3.connect(self._db_path)) as conn:
            existing = conn.execute(
                "SELECT id FROM contracts WHERE save_id = ? AND actor_id = ? AND status = ?",
                (self.save_id, contract.actor_id, ContractStatus.ACTIVE.value),
            ).fetchone()
            if existing:
                raise ActorUnavailableError(
                    f"Actor {contract.actor_id} is already under contract ({existing[0]})"
                )
            conn.execute(
                f"INSERT INTO contracts (save_id, {_CONTRACT_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    self.save_id,
                    contract.id,
                    contract.actor_id,
                    contract.studio_id,
                    contract.start_month,
                    contract.start_year,
                    contract.duration_months,
                    contract.monthly_salary,
                    contract.signing_bonus,
                    contract.status.value,
                ),
            )
            conn.commit()

    def terminate_contract(self, contract_id: str) -> Contract:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                f"SELECT {_CONTRACT_COLUMNS} FROM contracts WHERE save_id = ? AND id = ?",
                (self.save_id, contract_id),
            ).fetchone()
            if not row:
                raise UnknownEntityError(f"Unknown contract: {contract_id}")
            conn.execute(
                "UPDATE contracts SET status = ? WHERE save_id = ? AND id = ?",
                (ContractStatus.TERMINATED.value, self.save_id, contract_id),
            )
            conn.commit()
        contract = _contract_from_row(row)
        contract.status = ContractStatus.TERMINATED
        return contract

    def list_contracts(
        self,
        studio_id: Optional[str] = None,
        *,
        active_only: bool = False,
    ) -> List[Contract]:
        query = f"SELECT {_CONTRACT_COLUMNS} FROM contracts WHERE save_id = ?"
        params: List[Any] = [self.save_id]
        if studio_id is not None:
            query += " AND studio_id = ?"
            params.append(studio_id)
        if active_only:
            query += " AND status = ?"
            params.append(ContractStatus.ACTIVE.value)
        query += " ORDER BY start_year, start_month, id"
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(query, params).fetchall()
        return [_contract_from_row(row) for row in rows]

    def expire_contracts(self, month: int, year: int) -> List[Contract]:
        """Mark active contracts that have run their term as expired."""

        current = year * 12 + (month - 1)
        expired = [
            contract
            for contract in self.list_contracts(active_only=True)
            if contract.end_month_index() <= current
        ]
        if not expired:
            return []
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.executemany(
                "UPDATE contracts SET status = ? WHERE save_id = ? AND id = ?",
                [(ContractStatus.EXPIRED.value, self.save_id, contract.id) for contract in expired],
            )
            conn.commit()
        for contract in expired:
            contract.status = ContractStatus.EXPIRED
        logger.info("Expired %d contracts in save %s", len(expired), self.save_id)
        return expired

    # Saved games -------------------------------------------------------
    def save_game(self, state: GameState) -> int:
        """Write ``state`` if nobody else saved since it was loaded.

        ``state.version`` must equal the stored version (0 for a new save).
        On success the stored and in-memory versions are bumped and the new
        version is returned.
        """

        new_version = state.version + 1
        payload_state = dumps_state(replace(state, version=new_version))
        now = datetime.now(timezone.utc).isoformat()
        with closing(sqlite3.connect(self._db_path, isolation_level=None)) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT version FROM saves WHERE id = ?", (self.save_id,)
                ).fetchone()
                stored = row[0] if row else 0
                if stored != state.version:
                    raise StaleSaveError(
                        f"Save {self.save_id} is at version {stored}, "
                        f"caller loaded version {state.version}"
                    )
                conn.execute(
                    "REPLACE INTO saves (id, studio_name, month, year, version, payload, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        self.save_id,
                        state.studio_name,
                        state.month,
                        state.year,
                        new_version,
                        payload_state,
                        now,
                    ),
                )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        state.version = new_version
        return new_version

    def saved_version(self) -> int:
        """Version currently on disk for this save (0 when never saved)."""

        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT version FROM saves WHERE id = ?", (self.save_id,)
            ).fetchone()
        return row[0] if row else 0

    def load_game(self) -> Optional[GameState]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT payload, version FROM saves WHERE id = ?", (self.save_id,)
            ).fetchone()
        if not row:
            return None
        state = loads_state(row[0])
        state.version = row[1]
        return state

    def list_saves(self) -> List[Dict[str, Any]]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(
                "SELECT id, studio_name, month, year, version, updated_at "
                "FROM saves ORDER BY updated_at DESC"
            ).fetchall()
        return [
            {
                "save_id": row[0],
                "studio_name": row[1],
                "month": row[2],
                "year": row[3],
                "version": row[4],
                "updated_at": row[5],
            }
            for row in rows
        ]


__all__ = ["ActorStore", "DeferredActorWrites", "StudioStore"]
