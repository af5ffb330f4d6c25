"""SQLite persistence for resolved smart links.

Identity is enforced by the store itself: ``identity_key`` and ``slug`` are
UNIQUE, and concurrent inserts for the same identity converge on one row.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from config.settings import MATCH_THRESHOLD
from db.migrations import ensure_smart_links_table
from engine.errors import PersistenceConflict
from engine.search_scoring import normalize_text
from input.intent_router import InputKind, TrackQuery
from metadata.types import PLATFORM_PRIORITY, Platform, Resolution

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def slugify(title: str | None) -> str:
    text = (title or "").lower()
    slug = _SLUG_RE.sub("-", text).strip("-")
    return slug or "track"


def artist_title_key(artist: str | None, title: str | None) -> str:
    return f"{normalize_text(artist)}|{normalize_text(title)}"


def identity_key(isrc: str | None, artist: str | None, title: str | None, source_url: str | None = None) -> str:
    if isrc:
        return f"isrc:{isrc.strip().upper()}"
    if not (artist or "").strip() and not (title or "").strip() and source_url:
        return f"url:{source_url.strip()}"
    return f"at:{artist_title_key(artist, title)}"


@dataclass
class LookupKey:
    """Everything CacheCheck may match on, in lookup order."""

    isrc: str | None = None
    artist: str | None = None
    title: str | None = None
    source_url: str | None = None
    source_platform: Platform | None = None

    @classmethod
    def from_query(cls, query: TrackQuery) -> "LookupKey":
        return cls(
            isrc=query.isrc,
            artist=query.artist_hint,
            title=query.title_hint,
            source_url=query.raw_input if query.input_kind is InputKind.URL else None,
            source_platform=query.platform,
        )


@dataclass
class SmartLink:
    id: str
    slug: str
    artist: str
    title: str
    isrc: str | None
    urls: dict[Platform, str] = field(default_factory=dict)
    confidences: dict[Platform, float] = field(default_factory=dict)
    match_confidence: float = 0.0
    needs_manual_review: bool = True
    total_clicks: int = 0
    cover_art_url: str | None = None
    source_url: str | None = None
    resolver_sources: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def url_for(self, platform: Platform) -> str | None:
        return self.urls.get(platform) or None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "slug": self.slug,
            "artist": self.artist,
            "title": self.title,
            "isrc": self.isrc,
            "match_confidence": self.match_confidence,
            "needs_manual_review": self.needs_manual_review,
            "total_clicks": self.total_clicks,
            "cover_art_url": self.cover_art_url,
            "resolver_sources": list(self.resolver_sources),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        for platform in PLATFORM_PRIORITY:
            payload[f"{platform.value}_url"] = self.urls.get(platform)
            payload[f"{platform.value}_confidence"] = self.confidences.get(platform)
        return payload


def _row_to_smart_link(row: sqlite3.Row) -> SmartLink:
    urls: dict[Platform, str] = {}
    confidences: dict[Platform, float] = {}
    for platform in PLATFORM_PRIORITY:
        url = row[f"{platform.value}_url"]
        if url:
            urls[platform] = url
            confidence = row[f"{platform.value}_confidence"]
            if confidence is not None:
                confidences[platform] = float(confidence)
    try:
        sources = json.loads(row["resolver_sources"] or "[]")
    except ValueError:
        sources = []
    return SmartLink(
        id=row["id"],
        slug=row["slug"],
        artist=row["artist"],
        title=row["title"],
        isrc=row["isrc"],
        urls=urls,
        confidences=confidences,
        match_confidence=float(row["match_confidence"] or 0.0),
        needs_manual_review=bool(row["needs_manual_review"]),
        total_clicks=int(row["total_clicks"] or 0),
        cover_art_url=row["cover_art_url"],
        source_url=row["source_url"],
        resolver_sources=sources if isinstance(sources, list) else [],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SmartLinkStore:
    def __init__(self, db_path: str, *, match_threshold: float = MATCH_THRESHOLD) -> None:
        self.db_path = db_path
        self.match_threshold = match_threshold
        conn = self._connect()
        conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        ensure_smart_links_table(conn)
        return conn

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> SmartLink | None:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            row = cur.fetchone()
            return _row_to_smart_link(row) if row else None
        finally:
            conn.close()

    def find_existing(self, key: LookupKey) -> SmartLink | None:
        """Look up a reusable record by ISRC, then artist/title, then the literal source URL."""
        if key.isrc:
            found = self._fetch_one(
                "SELECT * FROM smart_links WHERE isrc=? ORDER BY updated_at DESC LIMIT 1",
                (key.isrc.strip().upper(),),
            )
            if found:
                return found
        if key.artist and key.title:
            found = self._fetch_one(
                "SELECT * FROM smart_links WHERE artist_title_key=? ORDER BY updated_at DESC LIMIT 1",
                (artist_title_key(key.artist, key.title),),
            )
            if found:
                return found
        if key.source_url:
            if key.source_platform is not None:
                column = f"{key.source_platform.value}_url"
                found = self._fetch_one(
                    f"SELECT * FROM smart_links WHERE {column}=? ORDER BY updated_at DESC LIMIT 1",
                    (key.source_url,),
                )
                if found:
                    return found
            return self._fetch_one(
                "SELECT * FROM smart_links WHERE source_url=? ORDER BY updated_at DESC LIMIT 1",
                (key.source_url,),
            )
        return None

    def get(self, record_id: str) -> SmartLink | None:
        return self._fetch_one("SELECT * FROM smart_links WHERE id=?", (record_id,))

    def get_by_slug(self, slug: str) -> SmartLink | None:
        cleaned = (slug or "").strip()
        if not cleaned:
            return None
        return self._fetch_one("SELECT * FROM smart_links WHERE slug=?", (cleaned,))

    def _link_values(self, resolution: Resolution) -> dict[str, Any]:
        match_confidence = resolution.match_confidence
        values: dict[str, Any] = {
            "artist": resolution.artist,
            "title": resolution.title,
            "isrc": resolution.isrc,
            "artist_title_key": artist_title_key(resolution.artist, resolution.title),
            "match_confidence": match_confidence,
            "needs_manual_review": 1 if match_confidence < self.match_threshold else 0,
            "cover_art_url": resolution.cover_art_url,
            "resolver_sources": json.dumps(list(resolution.resolver_sources)),
            "updated_at": _utc_now(),
        }
        for platform, result in resolution.links.items():
            values[f"{platform.value}_url"] = result.url
            values[f"{platform.value}_confidence"] = result.confidence
        return values

    def _update(self, conn: sqlite3.Connection, record_id: str, values: dict[str, Any]) -> None:
        # Unknown fields never erase what an earlier resolution stored.
        values = {column: value for column, value in values.items() if value is not None}
        assignments = ", ".join(f"{column}=?" for column in values)
        conn.execute(f"UPDATE smart_links SET {assignments} WHERE id=?", (*values.values(), record_id))

    def _insert(self, conn: sqlite3.Connection, values: dict[str, Any]) -> None:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        conn.execute(f"INSERT INTO smart_links ({columns}) VALUES ({placeholders})", tuple(values.values()))

    def upsert(self, query: TrackQuery, resolution: Resolution, existing: SmartLink | None = None) -> SmartLink:
        """Persist a resolution and return the stored record as re-read from the database.

        ``existing`` is updated in place (same id and slug). Otherwise a new
        row is inserted; losing an identity race updates the winner instead.
        """
        values = self._link_values(resolution)
        source_url = query.raw_input if query.input_kind is InputKind.URL else None

        conn = self._connect()
        try:
            if existing is not None:
                if source_url:
                    values["source_url"] = source_url
                self._update(conn, existing.id, values)
                conn.commit()
                record_id = existing.id
            else:
                record_id = self._insert_new(conn, values, resolution, source_url)
        finally:
            conn.close()

        stored = self.get(record_id)
        if stored is None:
            raise PersistenceConflict(f"smart link {record_id} vanished after write")
        logger.info(
            "smart_link_persisted id=%s slug=%s match_confidence=%.2f needs_manual_review=%s",
            stored.id,
            stored.slug,
            stored.match_confidence,
            stored.needs_manual_review,
        )
        return stored

    def _insert_new(
        self,
        conn: sqlite3.Connection,
        values: dict[str, Any],
        resolution: Resolution,
        source_url: str | None,
    ) -> str:
        key = identity_key(resolution.isrc, resolution.artist, resolution.title, source_url)
        now = values["updated_at"]
        row = dict(values)
        row.update(
            {
                "id": uuid4().hex,
                "identity_key": key,
                "slug": slugify(resolution.title),
                "total_clicks": 0,
                "source_url": source_url,
                "created_at": now,
            }
        )

        for attempt in range(2):
            try:
                self._insert(conn, row)
                conn.commit()
                return row["id"]
            except sqlite3.IntegrityError as exc:
                conn.rollback()
                # SQLite reports only one violated constraint, so check identity first.
                winner = conn.execute("SELECT id FROM smart_links WHERE identity_key=?", (key,)).fetchone()
                if winner is not None:
                    logger.info("smart_link_identity_race identity_key=%s winner=%s", key, winner["id"])
                    self._update(conn, winner["id"], values)
                    conn.commit()
                    return winner["id"]
                if "slug" not in str(exc):
                    raise
                if attempt == 1:
                    raise PersistenceConflict(f"slug collision persisted for {row['slug']}") from exc
                row["slug"] = f"{slugify(resolution.title)}-{int(time.time() * 1000)}"
                logger.info("smart_link_slug_collision new_slug=%s", row["slug"])
        raise PersistenceConflict("smart link insert failed")
