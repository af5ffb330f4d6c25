from __future__ import annotations

import importlib.util
import json
from pathlib import Path

from config.settings import ResolverSettings
from engine.errors import FatalResolutionError
from engine.resolver import ResolutionOutcome, SmartLinkResult


_MODULE_PATH = Path(__file__).resolve().parents[1] / "scripts" / "resolve_smoke.py"
_SPEC = importlib.util.spec_from_file_location("resolve_smoke", _MODULE_PATH)
assert _SPEC is not None and _SPEC.loader is not None
_SMOKE = importlib.util.module_from_spec(_SPEC)
_SPEC.loader.exec_module(_SMOKE)


class _Resolver:
    calls = []
    outcome = ResolutionOutcome.LOW_CONFIDENCE
    error = None

    def __init__(self, settings) -> None:
        self.settings = settings

    def resolve_track(self, raw, artist=None, title=None, *, force_refresh=False):
        _Resolver.calls.append((raw, artist, title, force_refresh))
        if _Resolver.error is not None:
            raise _Resolver.error
        return SmartLinkResult(outcome=_Resolver.outcome, confidence=0.5, message="nope")


def _patch(monkeypatch, tmp_path) -> None:
    _Resolver.calls = []
    _Resolver.error = None
    monkeypatch.setattr(_SMOKE, "TrackResolver", _Resolver)
    monkeypatch.setattr(_SMOKE, "load_settings", lambda path=None: ResolverSettings(db_path=str(tmp_path / "db")))


def test_smoke_joins_words_and_prints_json(monkeypatch, tmp_path, capsys) -> None:
    _patch(monkeypatch, tmp_path)

    exit_code = _SMOKE.main(["Jane", "Doe", "-", "Midnight", "Drive", "--force-refresh"])

    assert exit_code == 1
    assert _Resolver.calls == [("Jane Doe - Midnight Drive", None, None, True)]
    payload = json.loads(capsys.readouterr().out)
    assert payload["outcome"] == "low_confidence"
    assert payload["ok"] is False


def test_smoke_reports_fatal_errors(monkeypatch, tmp_path, capsys) -> None:
    _patch(monkeypatch, tmp_path)
    _Resolver.error = FatalResolutionError()

    assert _SMOKE.main(["USABC2400001"]) == 2
    assert "Could not resolve track" in capsys.readouterr().err
