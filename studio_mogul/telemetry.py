"""Telemetry for month advances, text generation and persistence errors."""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class MetricType(Enum):
    """Types of metrics tracked."""
    MONTH_ADVANCE = "month_advance"
    TEXT_GENERATION = "text_generation"
    ERROR_RATE = "error_rate"
    PERFORMANCE = "performance"
    GAME_PROGRESSION = "game_progression"


@dataclass
class MetricEvent:
    """Individual metric event."""
    timestamp: float
    metric_type: MetricType
    name: str
    value: float
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class TelemetryCollector:
    """Collects and stores telemetry data for Studio Mogul."""

    def __init__(self, db_path: Optional[Path] = None, flush_threshold: int = 100):
        """Initialize telemetry collector with database storage."""
        self.db_path = Path(db_path or os.getenv("TELEMETRY_DB_PATH", "telemetry.db"))
        self._init_database()
        self._metrics_buffer: List[MetricEvent] = []
        self._flush_threshold = flush_threshold
        self._flush_interval = 60  # seconds
        self._last_flush = time.time()

    def _init_database(self):
        """Initialize telemetry database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS metrics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    metric_type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    value REAL NOT NULL,
                    tags TEXT,
                    metadata TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_metrics_type_name
                ON metrics(metric_type, name)
            """)
            conn.commit()

    def track_advance(
        self,
        save_id: str,
        month: int,
        year: int,
        event_count: int,
        duration_ms: float,
        failed_actor_count: int = 0,
    ):
        """Track one completed month advance."""
        self.record(
            MetricType.MONTH_ADVANCE,
            "advance",
            duration_ms,
            tags={"save_id": save_id},
            metadata={
                "month": month,
                "year": year,
                "event_count": event_count,
                "failed_actor_count": failed_actor_count,
            },
        )

    def track_text_generation(
        self,
        kind: str,
        source: str,
        success: bool,
        duration_ms: float,
        error: Optional[str] = None,
    ):
        """Track a text collaborator call; ``source`` is remote, mock or local."""
        metadata: Dict[str, Any] = {}
        if error:
            metadata["error"] = error
        self.record(
            MetricType.TEXT_GENERATION,
            kind,
            duration_ms,
            tags={"source": source, "success": "true" if success else "false"},
            metadata=metadata,
        )

    def track_game_progression(
        self,
        event_name: str,
        value: float,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Track game progression events such as releases and award wins."""
        self.record(
            MetricType.GAME_PROGRESSION,
            event_name,
            value,
            metadata=details or {},
        )

    def track_error(
        self,
        error_type: str,
        operation: Optional[str] = None,
        error_details: Optional[str] = None,
    ):
        """Track errors and failures."""
        tags = {}
        if operation:
            tags["operation"] = operation
        self.record(
            MetricType.ERROR_RATE,
            error_type,
            1.0,
            tags=tags,
            metadata={"error_details": error_details} if error_details else {},
        )

    def track_performance(
        self,
        operation: str,
        duration_ms: float,
        tags: Optional[Dict[str, str]] = None,
    ):
        """Track performance metrics."""
        self.record(
            MetricType.PERFORMANCE,
            operation,
            duration_ms,
            tags=tags or {},
            metadata={"unit": "milliseconds"},
        )

    def record(
        self,
        metric_type: MetricType,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """Record a metric event."""
        event = MetricEvent(
            timestamp=time.time(),
            metric_type=metric_type,
            name=name,
            value=value,
            tags=tags or {},
            metadata=metadata or {},
        )
        self._metrics_buffer.append(event)

        if len(self._metrics_buffer) >= self._flush_threshold or \
           time.time() - self._last_flush > self._flush_interval:
            self.flush()

    @property
    def pending(self) -> int:
        return len(self._metrics_buffer)

    def flush(self):
        """Flush buffered metrics to database."""
        if not self._metrics_buffer:
            return

        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.executemany(
                    """
                    INSERT INTO metrics
                    (timestamp, metric_type, name, value, tags, metadata)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            event.timestamp,
                            event.metric_type.value,
                            event.name,
                            event.value,
                            json.dumps(event.tags),
                            json.dumps(event.metadata),
                        )
                        for event in self._metrics_buffer
                    ],
                )
                conn.commit()

            logger.info("Flushed %d metrics to database", len(self._metrics_buffer))
            self._metrics_buffer.clear()
            self._last_flush = time.time()

        except sqlite3.Error as e:
            logger.error("Failed to flush metrics: %s", e)

    def get_error_summary(self, hours: int = 24) -> Dict[str, int]:
        """Get error counts for the last N hours."""
        start_time = time.time() - (hours * 3600)
        query = """
            SELECT name, COUNT(*) as error_count
            FROM metrics
            WHERE metric_type = ? AND timestamp >= ?
            GROUP BY name
            ORDER BY error_count DESC
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, [MetricType.ERROR_RATE.value, start_time])
            return {row[0]: row[1] for row in cursor.fetchall()}

    def get_text_generation_summary(self, hours: int = 24) -> Dict[str, Dict[str, Any]]:
        """Summarise text collaborator calls per kind and source."""

        start_time = time.time() - (hours * 3600)
        query = """
            SELECT
                name,
                json_extract(tags, '$.source') as source,
                SUM(CASE WHEN json_extract(tags, '$.success') = 'true' THEN 1 ELSE 0 END),
                COUNT(*),
                AVG(value)
            FROM metrics
            WHERE metric_type = ? AND timestamp >= ?
            GROUP BY name, source
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, [MetricType.TEXT_GENERATION.value, start_time])
            summary: Dict[str, Dict[str, Any]] = {}
            for name, source, successes, total, avg_duration in cursor.fetchall():
                summary.setdefault(name, {})[source] = {
                    "total_calls": total,
                    "successes": successes or 0,
                    "avg_duration_ms": avg_duration or 0.0,
                }
            return summary

    def get_advance_summary(self, hours: int = 24) -> Dict[str, Any]:
        """Average duration and event volume of recent month advances."""

        start_time = time.time() - (hours * 3600)
        query = """
            SELECT
                COUNT(*),
                AVG(value),
                MAX(value),
                SUM(json_extract(metadata, '$.event_count')),
                SUM(json_extract(metadata, '$.failed_actor_count'))
            FROM metrics
            WHERE metric_type = ? AND timestamp >= ?
        """
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(query, [MetricType.MONTH_ADVANCE.value, start_time]).fetchone()
        count, avg_duration, max_duration, events, failures = row
        return {
            "advances": count or 0,
            "avg_duration_ms": avg_duration or 0.0,
            "max_duration_ms": max_duration or 0.0,
            "events": events or 0,
            "failed_actor_updates": failures or 0,
        }

    def cleanup_old_data(self, days_to_keep: int = 30):
        """Clean up old telemetry data."""
        cutoff_time = time.time() - (days_to_keep * 86400)

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM metrics WHERE timestamp < ?",
                (cutoff_time,)
            )
            deleted = cursor.rowcount
            conn.commit()

        logger.info("Cleaned up %d old metric events", deleted)
        return deleted


# Singleton instance
_telemetry: Optional[TelemetryCollector] = None


def get_telemetry() -> TelemetryCollector:
    """Get or create singleton telemetry collector."""
    global _telemetry
    if _telemetry is None:
        _telemetry = TelemetryCollector()
    return _telemetry


class track_duration:
    """Context manager recording an operation's duration on a collector."""

    def __init__(
        self,
        operation: str,
        telemetry: Optional[TelemetryCollector] = None,
        tags: Optional[Dict[str, str]] = None,
    ):
        self.operation = operation
        self.telemetry = telemetry
        self.tags = tags or {}
        self.start_time = 0.0
        self.duration_ms = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        telemetry = self.telemetry or get_telemetry()
        telemetry.track_performance(self.operation, self.duration_ms, self.tags)
        if exc_type:
            telemetry.track_error(
                exc_type.__name__,
                operation=self.operation,
                error_details=str(exc_val),
            )


__all__ = [
    "MetricType",
    "MetricEvent",
    "TelemetryCollector",
    "get_telemetry",
    "track_duration",
]
