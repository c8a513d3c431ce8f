"""FastAPI app - /hooks/<name> trigger endpoint plus plugin routes."""
import json
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import parse_qsl

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from hookrunner.config import Settings
from hookrunner.engine import Engine
from hookrunner.hooks.models import HookDefinitionError, HookResponse, RequestSnapshot
from hookrunner.orchestrator.dispatch import EngineClosedError
from hookrunner.plugins import PluginContext, enabled_plugins, setup_plugins

HOOK_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def parse_body(raw: bytes, content_type: str) -> Any:
    """JSON for JSON media types, a dict for url-encoded forms, text otherwise."""
    if not raw:
        return None
    media = content_type.split(";", 1)[0].strip().lower()
    if media == "application/json" or media.endswith("+json"):
        try:
            return json.loads(raw)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")
    text = raw.decode("utf-8", errors="replace")
    if media == "application/x-www-form-urlencoded":
        return dict(parse_qsl(text, keep_blank_values=True))
    return text


async def build_snapshot(request: Request) -> RequestSnapshot:
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return RequestSnapshot(
        method=request.method,
        url=url,
        hostname=request.headers.get("host", ""),
        ip=request.client.host if request.client else "",
        headers=dict(request.headers),
        query=dict(request.query_params),
        body=parse_body(await request.body(), request.headers.get("content-type", "")),
    )


def build_response(hook_response: HookResponse) -> Response:
    """Render a hook's static response descriptor."""
    status = hook_response.statusCode or 200
    headers = {str(k): str(v) for k, v in (hook_response.headers or {}).items()}
    body = hook_response.body
    if body is None:
        return Response(status_code=status, headers=headers, media_type=hook_response.contentType)
    if isinstance(body, str):
        return Response(body, status_code=status, headers=headers, media_type=hook_response.contentType or "text/plain")
    return JSONResponse(body, status_code=status, headers=headers, media_type=hook_response.contentType or "application/json")


def create_app(settings: Settings | None = None, engine: Engine | None = None) -> FastAPI:
    settings = settings or Settings()
    engine = engine or Engine(settings.hooks_path, settings.logs_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine.prepare()
        context = PluginContext(
            events=engine.events,
            runner=engine.runner,
            app=app,
            hooks_path=engine.hooks_root,
            logs_path=engine.logs_root,
            settings=settings,
        )
        await setup_plugins(enabled_plugins(settings), context)
        engine.start()
        try:
            yield
        finally:
            await engine.close()

    app = FastAPI(title="hookrunner", lifespan=lifespan)
    app.state.engine = engine
    app.state.settings = settings

    @app.api_route("/hooks/{hook_name:path}", methods=HOOK_METHODS)
    async def run_hook(hook_name: str, request: Request):
        """Trigger a hook. Unknown hooks and unmatched rules are both plain 404s."""
        snapshot = await build_snapshot(request)
        try:
            outcome = await engine.dispatcher.dispatch(hook_name, snapshot)
        except HookDefinitionError:
            raise HTTPException(status_code=500, detail="Invalid hook definition")
        except EngineClosedError:
            raise HTTPException(status_code=503, detail="Shutting down")
        if not outcome.matched:
            raise HTTPException(status_code=404)
        return build_response(outcome.response)

    return app
