import re
from dataclasses import dataclass

from metadata.types import ProviderResult, ResultSource

# Raw points that map to confidence 1.0.
MAX_SCORE_FOR_NORM = 30
MIN_SCORE_FOR_MATCH = 5

_QUOTES_RE = re.compile(r"[\"'‘’“”]")
_SPACES_RE = re.compile(r"\s+")
_ARTIST_SPLIT_RE = re.compile(r"[,/&]|feat\.|ft\.", re.IGNORECASE)


@dataclass(frozen=True)
class ScoreBreakdown:
    score: int
    artist_hit: bool
    isrc_hit: bool


def clamp01(value):
    if value < 0:
        return 0.0
    if value > 1:
        return 1.0
    return float(value)


def normalize_text(value):
    if not value:
        return ""
    text = str(value).lower()
    text = _QUOTES_RE.sub("", text)
    text = _SPACES_RE.sub(" ", text)
    return text.strip()


def split_artists(value):
    if not value:
        return []
    parts = (normalize_text(part) for part in _ARTIST_SPLIT_RE.split(str(value)))
    return [part for part in parts if part]


def _containment(left, right):
    return bool(left and right and (left in right or right in left))


def score_artists(base, candidate_artist):
    """Return ``(points, hit)``: 5 for an exact fragment match, 2 for containment."""
    base_names = set()
    for name in [base.artist, *base.artists]:
        normalized = normalize_text(name)
        if normalized:
            base_names.add(normalized)
        base_names.update(split_artists(name))

    candidate_parts = split_artists(candidate_artist)
    if not base_names or not candidate_parts:
        return 0, False

    if any(part in base_names for part in candidate_parts):
        return 5, True
    for part in candidate_parts:
        if any(_containment(name, part) for name in base_names):
            return 2, True
    return 0, False


def _year(value):
    text = str(value or "")[:4]
    return int(text) if text.isdigit() else None


def _text_points(expected, candidate, exact_pts, partial_pts):
    if not expected or not candidate:
        return 0
    if expected == candidate:
        return exact_pts
    if _containment(expected, candidate):
        return partial_pts
    return 0


def duration_points(expected_sec, candidate_sec):
    if not expected_sec or not candidate_sec:
        return 0
    delta = abs(expected_sec - candidate_sec)
    if delta <= 2:
        return 4
    if delta <= 5:
        return 3
    if delta <= 10:
        return 1
    return 0


def release_year_points(expected_date, candidate_date):
    expected_year = _year(expected_date)
    candidate_year = _year(candidate_date)
    if expected_year is None or candidate_year is None:
        return 0
    delta = abs(expected_year - candidate_year)
    if delta == 0:
        return 2
    if delta == 1:
        return 1
    return 0


def score_candidate(base, candidate):
    """Score one platform candidate against the reference track.

    Points are additive: ISRC equality 10, artist up to 5, title up to 5,
    duration up to 4, release year up to 2, album up to 2, label up to 2.
    """
    score = 0

    isrc_hit = bool(base.isrc and candidate.isrc and base.isrc.upper() == candidate.isrc.upper())
    if isrc_hit:
        score += 10

    artist_pts, artist_hit = score_artists(base, candidate.artist)
    score += artist_pts

    score += _text_points(normalize_text(base.title), normalize_text(candidate.title), 5, 3)
    score += duration_points(base.duration_seconds, candidate.duration_seconds)
    score += release_year_points(base.release_date, candidate.release_date)
    score += _text_points(normalize_text(base.album), normalize_text(candidate.album), 2, 1)
    score += _text_points(normalize_text(base.label), normalize_text(candidate.label), 2, 1)

    return ScoreBreakdown(score=score, artist_hit=artist_hit, isrc_hit=isrc_hit)


def to_confidence(score):
    return clamp01(score / MAX_SCORE_FOR_NORM)


def is_acceptable(breakdown):
    # Title, duration and album alone never make a match.
    return breakdown.score >= MIN_SCORE_FOR_MATCH and (breakdown.artist_hit or breakdown.isrc_hit)


def select_best(base, candidates):
    """Return the highest-scoring acceptable candidate as a ``ProviderResult``.

    Ties keep the earlier candidate, so provider ranking breaks them.
    """
    best = None
    best_breakdown = None
    for candidate in candidates or []:
        if not candidate.platform_url:
            continue
        breakdown = score_candidate(base, candidate)
        if best_breakdown is None or breakdown.score > best_breakdown.score:
            best = candidate
            best_breakdown = breakdown

    if best is None or not is_acceptable(best_breakdown):
        return None
    return ProviderResult(
        provider=best.platform,
        id=best.platform_id,
        url=best.platform_url,
        confidence=to_confidence(best_breakdown.score),
        source=ResultSource.SEARCH,
        cover_art_url=best.cover_art_url,
        title=best.title or None,
        artist=best.artist or None,
        isrc=best.isrc,
    )
