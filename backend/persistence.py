"""
Save/load for the game state.

The state is one JSON document stored under a fixed key. Loading never
raises: unreadable or corrupt saves fall back to a fresh default state.
"""

import json
import logging
import sqlite3
from typing import Dict, Optional, Protocol

from catalog import DEFAULT_CATALOG, Catalog
from config import CONFIG, GameConfig
from game_state import GameState, fresh_state, merge_persisted

logger = logging.getLogger(__name__)


class SaveStore(Protocol):
    def read(self, key: str) -> Optional[str]:
        ...

    def write(self, key: str, payload: str) -> None:
        ...


class SqliteSaveStore:
    """Key/value table in a local SQLite file; opens one connection per call."""

    def __init__(self, path: str = "tycoon.db"):
        self.path = path
        self.init_db()

    def init_db(self) -> None:
        conn = sqlite3.connect(self.path)
        c = conn.cursor()
        c.execute("""
            CREATE TABLE IF NOT EXISTS saves (
                key TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()
        conn.close()

    def read(self, key: str) -> Optional[str]:
        conn = sqlite3.connect(self.path)
        try:
            c = conn.cursor()
            c.execute("SELECT payload FROM saves WHERE key = ?", (key,))
            row = c.fetchone()
        finally:
            conn.close()
        return row[0] if row else None

    def write(self, key: str, payload: str) -> None:
        conn = sqlite3.connect(self.path)
        try:
            c = conn.cursor()
            c.execute("""
                INSERT INTO saves (key, payload, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = CURRENT_TIMESTAMP
            """, (key, payload))
            conn.commit()
        finally:
            conn.close()


class MemorySaveStore:
    """In-process store for tests and headless runs."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.writes = 0

    def read(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def write(self, key: str, payload: str) -> None:
        self.data[key] = payload
        self.writes += 1


def dump_state(state: GameState) -> str:
    return json.dumps(state.to_dict())


def load_state(
    store: SaveStore,
    now: float,
    catalog: Catalog = DEFAULT_CATALOG,
    config: GameConfig = CONFIG,
) -> GameState:
    """Read and merge the persisted document, or return a fresh state."""
    key = config.session.storage_key
    try:
        payload = store.read(key)
    except (OSError, sqlite3.Error):
        logger.exception(f"Could not read save '{key}', starting fresh")
        return fresh_state(now, catalog, config)

    if payload is None:
        logger.info("No save found, starting a new game")
        return fresh_state(now, catalog, config)

    try:
        return merge_persisted(json.loads(payload), now, catalog, config)
    except (ValueError, TypeError, KeyError, AttributeError):
        logger.exception(f"Corrupt save '{key}', starting fresh")
        return fresh_state(now, catalog, config)
