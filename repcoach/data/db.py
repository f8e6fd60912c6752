from __future__ import annotations
import json
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Union

from repcoach.common.config import get_settings

_DB_PATH: Path = get_settings().db_path

SCHEMA = r"""
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS sessions (
  id TEXT PRIMARY KEY,
  exercise TEXT NOT NULL,
  source TEXT NOT NULL,
  started_at REAL NOT NULL,
  stopped_at REAL,
  total_reps INTEGER,
  valid_reps INTEGER
);

CREATE TABLE IF NOT EXISTS reps (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  session_id TEXT NOT NULL,
  rep_index INTEGER NOT NULL,
  t REAL NOT NULL,
  is_valid INTEGER NOT NULL,
  metrics_json TEXT NOT NULL,
  cues TEXT,
  UNIQUE(session_id, rep_index),
  FOREIGN KEY(session_id) REFERENCES sessions(id)
);
"""

_conn: Optional[sqlite3.Connection] = None
_lock = threading.Lock()


def configure(path: Union[str, Path]):
    """Point the module at another database file (closes any open connection)."""
    global _DB_PATH, _conn
    with _lock:
        if _conn is not None:
            _conn.close()
            _conn = None
        _DB_PATH = Path(path)


def get_conn() -> sqlite3.Connection:
    global _conn
    if _conn is None:
        _DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        _conn = sqlite3.connect(_DB_PATH.as_posix(), check_same_thread=False)
        _conn.row_factory = sqlite3.Row
        _conn.execute("PRAGMA foreign_keys=ON;")
        _conn.executescript(SCHEMA)
        _conn.commit()
    return _conn

# Session-level writes

def insert_session(session_id: str, exercise: str, source: str, started_at: float):
    with _lock:
        conn = get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO sessions (id, exercise, source, started_at) VALUES (?,?,?,?)",
            (session_id, exercise, source, started_at),
        )
        conn.commit()


def stop_session(session_id: str, stopped_at: float, total_reps: int, valid_reps: int):
    with _lock:
        conn = get_conn()
        conn.execute(
            "UPDATE sessions SET stopped_at=?, total_reps=?, valid_reps=? WHERE id=?",
            (stopped_at, total_reps, valid_reps, session_id),
        )
        conn.commit()


def get_session(session_id: str) -> Optional[dict]:
    with _lock:
        row = get_conn().execute("SELECT * FROM sessions WHERE id=?", (session_id,)).fetchone()
    return dict(row) if row else None

# Rep writes

def insert_rep(session_id: str, rep_index: int, t: float, is_valid: bool, metrics: dict, cues: List[str]):
    with _lock:
        conn = get_conn()
        conn.execute(
            "INSERT INTO reps (session_id, rep_index, t, is_valid, metrics_json, cues) VALUES (?,?,?,?,?,?)",
            (session_id, rep_index, t, int(is_valid), json.dumps(metrics), json.dumps(cues)),
        )
        conn.commit()


def list_reps(session_id: str) -> List[dict]:
    with _lock:
        rows = get_conn().execute(
            "SELECT rep_index, t, is_valid, metrics_json, cues FROM reps WHERE session_id=? ORDER BY rep_index",
            (session_id,),
        ).fetchall()
    return [
        {
            "rep_index": r["rep_index"],
            "t": r["t"],
            "is_valid": bool(r["is_valid"]),
            "metrics": json.loads(r["metrics_json"]),
            "cues": json.loads(r["cues"] or "[]"),
        }
        for r in rows
    ]
