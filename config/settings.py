"""Application settings constants and environment-driven resolver settings."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

# Records whose best platform confidence falls below this are flagged for review.
MATCH_THRESHOLD = 0.6

# Free-text queries without recognition corroboration must reach this confidence.
FREE_TEXT_MIN_CONFIDENCE = 0.8

# Confidence assigned to free-text recognition hits with and without an ISRC.
FREE_TEXT_ISRC_CONFIDENCE = 0.9
FREE_TEXT_NO_ISRC_CONFIDENCE = 0.5

# Hard deadline for one recognition provider call.
RECOGNITION_TIMEOUT_SECONDS = 12.0

# Deadline for each platform search client (they run in parallel).
PROVIDER_TIMEOUT_SECONDS = 5.0

# Wall-clock budget for the whole parallel search; late branches count as no result.
FAN_OUT_TIMEOUT_SECONDS = 8.0

# Candidates requested from each platform search endpoint.
SEARCH_LIMIT = 5

# Recognition links without a provider score, with and without an ISRC.
RECOGNITION_ISRC_CONFIDENCE = 0.9
RECOGNITION_NO_ISRC_CONFIDENCE = 0.7

# A link taken verbatim from the user's own input.
INPUT_URL_CONFIDENCE = 1.0

# Upper bound on concurrent platform searches per resolution.
MAX_PARALLEL_PROVIDERS = 7

# Recognition provider accepts at most five platforms per call.
RECOGNITION_PLATFORMS = ("spotify", "applemusic", "youtube", "amazonmusic", "tidal")

DEFAULT_PUBLIC_BASE_URL = "https://ghoste.one"
DEFAULT_RECOGNITION_BASE_URL = "https://eu-api-v2.acrcloud.com"


def _env(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _default_db_path() -> str:
    return str(Path(os.getcwd()) / "data" / "smart_links.sqlite3")


@dataclass(frozen=True)
class ResolverSettings:
    db_path: str
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    recognition_base_url: str = DEFAULT_RECOGNITION_BASE_URL
    recognition_token: str | None = None
    recognition_timeout_sec: float = RECOGNITION_TIMEOUT_SECONDS
    provider_timeout_sec: float = PROVIDER_TIMEOUT_SECONDS
    fan_out_timeout_sec: float = FAN_OUT_TIMEOUT_SECONDS
    spotify_client_id: str | None = None
    spotify_client_secret: str | None = None
    apple_developer_token: str | None = None
    apple_storefront: str = "us"
    youtube_api_key: str | None = None
    soundcloud_client_id: str | None = None
    match_threshold: float = MATCH_THRESHOLD
    free_text_min_confidence: float = FREE_TEXT_MIN_CONFIDENCE
    complete_missing_platforms: bool = False

    @classmethod
    def from_env(cls) -> "ResolverSettings":
        return cls(
            db_path=_env("SMARTLINK_DB_PATH", _default_db_path()),
            public_base_url=_env("SMARTLINK_PUBLIC_BASE_URL", DEFAULT_PUBLIC_BASE_URL).rstrip("/"),
            recognition_base_url=_env("ACRCLOUD_BASE_URL", DEFAULT_RECOGNITION_BASE_URL).rstrip("/"),
            recognition_token=_env("ACRCLOUD_BEARER_TOKEN"),
            recognition_timeout_sec=_env_float("SMARTLINK_RECOGNITION_TIMEOUT", RECOGNITION_TIMEOUT_SECONDS),
            provider_timeout_sec=_env_float("SMARTLINK_PROVIDER_TIMEOUT", PROVIDER_TIMEOUT_SECONDS),
            fan_out_timeout_sec=_env_float("SMARTLINK_FAN_OUT_TIMEOUT", FAN_OUT_TIMEOUT_SECONDS),
            spotify_client_id=_env("SPOTIFY_CLIENT_ID"),
            spotify_client_secret=_env("SPOTIFY_CLIENT_SECRET"),
            apple_developer_token=_env("APPLE_MUSIC_DEVELOPER_TOKEN"),
            apple_storefront=_env("APPLE_MUSIC_STOREFRONT", "us"),
            youtube_api_key=_env("YOUTUBE_API_KEY"),
            soundcloud_client_id=_env("SOUNDCLOUD_CLIENT_ID"),
            match_threshold=_env_float("SMARTLINK_MATCH_THRESHOLD", MATCH_THRESHOLD),
            free_text_min_confidence=_env_float("SMARTLINK_FREE_TEXT_MIN_CONFIDENCE", FREE_TEXT_MIN_CONFIDENCE),
            complete_missing_platforms=_env_bool("SMARTLINK_COMPLETE_MISSING_PLATFORMS"),
        )

    def with_overrides(self, overrides: dict[str, Any]) -> "ResolverSettings":
        known = {field.name for field in fields(self)}
        return replace(self, **{key: value for key, value in overrides.items() if key in known})


def load_config(path):
    with open(path, "r") as f:
        return json.load(f)


def validate_config(config):
    errors = []
    if not isinstance(config, dict):
        return ["config must be a JSON object"]

    known = {field.name for field in fields(ResolverSettings)}
    for key in config:
        if key not in known:
            errors.append(f"unknown setting: {key}")

    for key in ("recognition_timeout_sec", "provider_timeout_sec", "fan_out_timeout_sec"):
        value = config.get(key)
        if value is not None and (not isinstance(value, (int, float)) or value <= 0):
            errors.append(f"{key} must be a positive number")

    for key in ("match_threshold", "free_text_min_confidence"):
        value = config.get(key)
        if value is not None and (not isinstance(value, (int, float)) or not 0 <= value <= 1):
            errors.append(f"{key} must be between 0 and 1")

    flag = config.get("complete_missing_platforms")
    if flag is not None and not isinstance(flag, bool):
        errors.append("complete_missing_platforms must be a boolean")
    return errors


def load_settings(config_path: str | None = None) -> ResolverSettings:
    """Build settings from the environment, overlaid by an optional JSON config file."""
    settings = ResolverSettings.from_env()
    path = config_path or _env("SMARTLINK_CONFIG_PATH")
    if not path:
        return settings
    config = load_config(path)
    errors = validate_config(config)
    if errors:
        raise ValueError("; ".join(errors))
    return settings.with_overrides(config)
