import os
import json
import sqlite3
from datetime import datetime, timezone

from birdrelay.normalize import AUDIO, IMAGE

# Kind-specific record fields kept alongside the name and confidence.
ADDITIONAL_FIELDS = {
    AUDIO: ("reasoning", "alternatives", "facts"),
    IMAGE: ("keyFeatures", "alternatives", "habitat", "conservation", "facts"),
}


def _connect(db_path: str):
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    init_db(conn)
    return conn


def init_db(conn):
    cur = conn.cursor()
    cur.execute("""
    CREATE TABLE IF NOT EXISTS bird_identifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        bird_name TEXT,
        confidence REAL,
        identification_type TEXT,
        additional_info TEXT,
        created_at TEXT
    )
    """)
    conn.commit()


def save_identification(db_path: str, identification_type: str, record: dict) -> int:
    if identification_type not in ADDITIONAL_FIELDS:
        raise ValueError(f"Unknown identification type: {identification_type!r}")

    additional_info = {
        k: record.get(k) for k in ADDITIONAL_FIELDS[identification_type]
    }
    confidence = record.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = None

    conn = _connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute("""
        INSERT INTO bird_identifications (bird_name, confidence, identification_type, additional_info, created_at)
        VALUES (?, ?, ?, ?, ?)
        """, (
            record.get("birdName"),
            confidence,
            identification_type,
            json.dumps(additional_info, ensure_ascii=False),
            datetime.now(timezone.utc).isoformat(),
        ))
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def fetch_recent(db_path: str, limit: int = 50) -> list:
    conn = _connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute("""
        SELECT id, bird_name, confidence, identification_type, additional_info, created_at
        FROM bird_identifications
        ORDER BY id DESC
        LIMIT ?
        """, (limit,))
        rows = cur.fetchall()
    finally:
        conn.close()

    return [
        {
            "id": r[0],
            "bird_name": r[1],
            "confidence": r[2],
            "identification_type": r[3],
            "additional_info": json.loads(r[4]) if r[4] else {},
            "created_at": r[5],
        }
        for r in rows
    ]
