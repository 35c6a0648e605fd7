"""SQLite-backed persistence for emitted governance events."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .events import EventType, GovernanceEvent


@dataclass(slots=True)
class EventStore:
    """Append-only event log per deployment."""

    db_path: str

    def __post_init__(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.initialize()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def initialize(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    deployment TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    event_type TEXT NOT NULL,
                    emitter TEXT NOT NULL,
                    block_number INTEGER NOT NULL,
                    timestamp INTEGER NOT NULL,
                    event_hash TEXT NOT NULL,
                    event_json TEXT NOT NULL,
                    PRIMARY KEY (deployment, sequence)
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS events_by_type
                ON events (deployment, event_type)
                """
            )

    def count(self, deployment: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM events WHERE deployment = ?", (deployment,)
            ).fetchone()
            return int(row[0])

    def append(self, deployment: str, events: Iterable[GovernanceEvent]) -> int:
        """Append events after the stored ones; returns the new event count."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT MAX(sequence) FROM events WHERE deployment = ?",
                (deployment,),
            ).fetchone()
            sequence = 0 if row[0] is None else row[0] + 1
            for event in events:
                conn.execute(
                    """
                    INSERT INTO events (
                        deployment, sequence, event_type, emitter,
                        block_number, timestamp, event_hash, event_json
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        deployment,
                        sequence,
                        event.event_type.value,
                        event.emitter,
                        event.block_number,
                        event.timestamp,
                        event.get_hash(),
                        event.to_json(),
                    ),
                )
                sequence += 1
            return sequence

    def load_events(
        self, deployment: str, event_type: EventType | None = None
    ) -> list[GovernanceEvent]:
        query = "SELECT event_json FROM events WHERE deployment = ?"
        params: tuple[str, ...] = (deployment,)
        if event_type is not None:
            query += " AND event_type = ?"
            params = (deployment, event_type.value)
        query += " ORDER BY sequence ASC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [GovernanceEvent.from_dict(json.loads(row[0])) for row in rows]

    def list_deployments(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT deployment FROM events ORDER BY deployment"
            ).fetchall()
        return [row[0] for row in rows]

    def delete_deployment(self, deployment: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM events WHERE deployment = ?", (deployment,))
