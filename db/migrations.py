"""SQLite migrations for smart-link storage."""

from __future__ import annotations

import sqlite3

from metadata.types import PLATFORM_PRIORITY

PLATFORM_COLUMNS = tuple(platform.value for platform in PLATFORM_PRIORITY)


def ensure_smart_links_table(conn: sqlite3.Connection) -> None:
    """Ensure the smart_links table, its uniqueness constraints and lookup indexes exist."""
    platform_columns = ",\n".join(
        f"            {name}_url TEXT,\n            {name}_confidence REAL"
        for name in PLATFORM_COLUMNS
    )
    cur = conn.cursor()
    cur.execute(
        f"""
        CREATE TABLE IF NOT EXISTS smart_links (
            id TEXT PRIMARY KEY,
            identity_key TEXT NOT NULL UNIQUE,
            slug TEXT NOT NULL UNIQUE,
            artist TEXT NOT NULL,
            title TEXT NOT NULL,
            isrc TEXT,
            artist_title_key TEXT NOT NULL,
{platform_columns},
            match_confidence REAL NOT NULL DEFAULT 0,
            needs_manual_review INTEGER NOT NULL DEFAULT 0,
            total_clicks INTEGER NOT NULL DEFAULT 0,
            cover_art_url TEXT,
            source_url TEXT,
            resolver_sources TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_smart_links_isrc ON smart_links (isrc)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_smart_links_artist_title ON smart_links (artist_title_key)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_smart_links_source_url ON smart_links (source_url)")
    for name in PLATFORM_COLUMNS:
        cur.execute(f"CREATE INDEX IF NOT EXISTS idx_smart_links_{name}_url ON smart_links ({name}_url)")
    conn.commit()
