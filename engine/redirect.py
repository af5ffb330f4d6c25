"""Visitor redirect destination selection for persisted smart links."""

from __future__ import annotations

from db.smart_links import SmartLink
from metadata.types import PLATFORM_PRIORITY


def first_platform_url(record: SmartLink | None) -> str | None:
    """First non-empty platform URL in fixed product priority order."""
    if record is None:
        return None
    for platform in PLATFORM_PRIORITY:
        url = (record.url_for(platform) or "").strip()
        if url:
            return url
    return None


def resolve_destination(record: SmartLink | None, public_base_url: str) -> str:
    """Platform URL by priority, else the canonical short link, else an empty string."""
    url = first_platform_url(record)
    if url:
        return url
    slug = (record.slug if record is not None else "") or ""
    if slug.strip():
        return f"{(public_base_url or '').rstrip('/')}/s/{slug.strip()}"
    return ""
