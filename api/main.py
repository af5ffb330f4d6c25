from __future__ import annotations

import functools
import logging
import os

import anyio
from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from config.settings import load_settings
from engine.errors import ResolutionError
from engine.json_utils import safe_json_dumps
from engine.redirect import first_platform_url, resolve_destination
from engine.resolver import ResolutionOutcome, TrackResolver

APP_NAME = "Smart Link Resolver API"
_TRUST_PROXY = os.environ.get("SMARTLINK_TRUST_PROXY", "").strip().lower() in {"1", "true", "yes", "on"}

logger = logging.getLogger(__name__)


def _env_or_default(name, default):
    value = os.environ.get(name)
    return value if value else default


class ResolveRequest(BaseModel):
    input: str | None = None
    url: str | None = None
    artist: str | None = None
    title: str | None = None
    force_refresh: bool = False


class SafeJSONResponse(JSONResponse):
    def render(self, content):
        return safe_json_dumps(content, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


app = FastAPI(
    title=APP_NAME,
    description="Resolve a track reference into a multi-platform smart link.",
    default_response_class=SafeJSONResponse,
)

if _TRUST_PROXY:
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")


@app.on_event("startup")
async def startup():
    if getattr(app.state, "resolver", None) is None:
        settings = load_settings()
        os.makedirs(os.path.dirname(settings.db_path) or ".", exist_ok=True)
        app.state.resolver = TrackResolver(settings)


def _resolver() -> TrackResolver:
    resolver = getattr(app.state, "resolver", None)
    if resolver is None:
        raise HTTPException(status_code=503, detail="Resolver not initialized")
    return resolver


@app.post("/api/smart-links/resolve")
async def resolve_smart_link(payload: ResolveRequest = Body(...)):
    resolver = _resolver()
    raw = payload.input or payload.url or ""
    try:
        result = await anyio.to_thread.run_sync(
            functools.partial(
                resolver.resolve_track,
                raw,
                payload.artist,
                payload.title,
                force_refresh=payload.force_refresh,
            )
        )
    except ResolutionError:
        logger.exception("Smart link resolution failed")
        raise HTTPException(status_code=500, detail="Could not resolve track")

    if result.outcome is ResolutionOutcome.NO_INPUT:
        raise HTTPException(status_code=400, detail=result.message)

    body = result.to_dict()
    body["destination_url"] = (
        resolve_destination(result.record, resolver.settings.public_base_url) if result.record else ""
    )
    return body


@app.get("/api/smart-links/{slug}")
async def get_smart_link(slug: str):
    resolver = _resolver()
    record = await anyio.to_thread.run_sync(resolver.store.get_by_slug, slug)
    if record is None:
        raise HTTPException(status_code=404, detail="Smart link not found")
    body = record.to_dict()
    body["destination_url"] = resolve_destination(record, resolver.settings.public_base_url)
    return body


@app.get("/s/{slug}")
async def redirect_smart_link(slug: str):
    resolver = _resolver()
    record = await anyio.to_thread.run_sync(resolver.store.get_by_slug, slug)
    if record is None:
        raise HTTPException(status_code=404, detail="Smart link not found")
    destination = first_platform_url(record)
    if not destination:
        # No platform link yet: send visitors to the landing page instead of looping on /s/.
        return RedirectResponse(url=f"/l/{record.slug}", status_code=302)
    return RedirectResponse(url=destination, status_code=302)


if __name__ == "__main__":
    import uvicorn

    host = _env_or_default("SMARTLINK_HOST", "127.0.0.1")
    port = int(_env_or_default("SMARTLINK_PORT", "8000"))
    uvicorn.run("api.main:app", host=host, port=port, reload=False)
