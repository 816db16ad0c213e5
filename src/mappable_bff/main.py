# src/mappable_bff/main.py

import logging
import typing

import httpx
from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel
from starlette.background import BackgroundTask

from .config import CONFIG_FILE_DIR, Settings, settings as default_settings
from .exceptions import MapProxyError, ValidationError
from .log_setup import configure_logging
from .session_store import (
    SessionMiddlewareCustom,
    SessionStore,
    get_session_id,
    get_session_store,
    require_api_key,
)
from .upstream import MappableUpstream, build_http_client

logger = logging.getLogger(__name__)

STATIC_DIR = CONFIG_FILE_DIR / "static"
TEMPLATES_DIR = CONFIG_FILE_DIR / "templates"

templates = Jinja2Templates(directory=TEMPLATES_DIR)


# --- Request bodies (field names follow the browser's JSON) ---
class SetApiKeyRequest(BaseModel):
    apiKey: typing.Optional[str] = None


class SuggestRequest(BaseModel):
    query: typing.Optional[str] = None


class GeocodeRequest(BaseModel):
    uri: typing.Optional[str] = None


# --- Dependencies ---
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_upstream(
        client: httpx.AsyncClient = Depends(get_http_client),
        app_settings: Settings = Depends(get_settings),
) -> MappableUpstream:
    return MappableUpstream(client, app_settings)


async def handle_map_proxy_error(request: Request, exc: MapProxyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Body messages per route; pydantic error details (which echo the input) never reach the client
BODY_ERROR_MESSAGES = {
    "/api/setApiKey": "API key is required.",
    "/api/suggest": "Query is required.",
    "/api/geocode": "URI is required.",
}


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = BODY_ERROR_MESSAGES.get(request.url.path, "Invalid request body.")
    logger.warning("Rejected malformed body for %s %s (%d error(s))",
                   request.method, request.url.path, len(exc.errors()))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": message})


def create_app(app_settings: typing.Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or default_settings

    app = FastAPI(
        title="Mappable BFF API",
        description="Backend-For-Frontend that keeps the Mappable API key server-side and proxies map traffic.",
        version="0.1.0"
    )
    app.state.settings = app_settings
    app.state.session_store = SessionStore(max_age=app_settings.SESSION_MAX_AGE_SECONDS)

    app.add_middleware(
        SessionMiddlewareCustom,
        store=app.state.session_store,
        secret_key=app_settings.SESSION_SECRET_KEY,
        https_only=app_settings.is_production,
    )
    app.add_exception_handler(MapProxyError, handle_map_proxy_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)

    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    @app.on_event("startup")
    async def startup_event():
        configure_logging(app_settings.LOG_LEVEL)
        app.state.http_client = build_http_client(app_settings)
        logger.info("--- Mappable BFF (FastAPI) Starting Up ---")
        logger.info("Environment: %s (secure cookies: %s)", app_settings.ENVIRONMENT, app_settings.is_production)
        logger.info("Script host: %s", app_settings.SCRIPT_HOST_URL)
        logger.info("Tile host: %s", app_settings.TILE_HOST_URL)
        logger.info("Suggest host: %s", app_settings.SUGGEST_URL)
        logger.info("Geocode host: %s", app_settings.GEOCODE_URL)
        logger.info("Upstream timeout: %ss", app_settings.UPSTREAM_TIMEOUT_SECONDS)
        if app_settings.uses_default_secret:
            if app_settings.is_production:
                logger.critical("SESSION_SECRET_KEY is the built-in default. Session cookies are forgeable.")
            else:
                logger.warning("SESSION_SECRET_KEY is not set; using the development default.")

    @app.on_event("shutdown")
    async def shutdown_event():
        client = getattr(app.state, "http_client", None)
        if client is not None:
            await client.aclose()
        logger.info("Mappable BFF shut down.")

    # --- Key management ---
    @app.post("/api/setApiKey", response_class=PlainTextResponse)
    async def set_api_key(request: Request, body: typing.Optional[SetApiKeyRequest] = Body(default=None)):
        api_key = (body.apiKey or "").strip() if body else ""
        if not api_key:
            raise ValidationError("API key is required.")
        get_session_store(request).set_key(get_session_id(request), api_key)
        logger.info("API key stored for session.")
        return "API key set successfully."

    @app.get("/api/checkApiKey")
    async def check_api_key(request: Request):
        exists = get_session_store(request).get_key(get_session_id(request)) is not None
        return {"apiKeyExists": exists}

    @app.post("/api/clearApiKey")
    async def clear_api_key(request: Request):
        get_session_store(request).invalidate(get_session_id(request))
        logger.info("Session invalidated on request.")
        return {"apiKeyExists": False}

    # --- Upstream proxies ---
    @app.get("/api/map-script")
    async def map_script(
            api_key: str = Depends(require_api_key),
            upstream: MappableUpstream = Depends(get_upstream),
    ):
        body = await upstream.fetch_script(api_key)
        return Response(content=body, media_type="application/javascript")

    @app.get("/api/map-proxy/{resource_path:path}")
    async def map_proxy(
            request: Request,
            resource_path: str,
            api_key: str = Depends(require_api_key),
            upstream: MappableUpstream = Depends(get_upstream),
    ):
        upstream_response = await upstream.open_resource(
            api_key, resource_path, request.query_params.multi_items(),
        )
        return StreamingResponse(
            upstream_response.aiter_bytes(),
            status_code=upstream_response.status_code,
            media_type=upstream_response.headers.get("content-type", "application/octet-stream"),
            background=BackgroundTask(upstream_response.aclose),
        )

    @app.post("/api/suggest")
    async def suggest(
            body: typing.Optional[SuggestRequest] = Body(default=None),
            api_key: str = Depends(require_api_key),
            upstream: MappableUpstream = Depends(get_upstream),
    ):
        query = body.query if body else None
        if not query or not query.strip():
            raise ValidationError("Query is required.")
        return JSONResponse(content=await upstream.suggest(api_key, query))

    @app.post("/api/geocode")
    async def geocode(
            body: typing.Optional[GeocodeRequest] = Body(default=None),
            api_key: str = Depends(require_api_key),
            upstream: MappableUpstream = Depends(get_upstream),
    ):
        uri = body.uri if body else None
        if not uri or not uri.strip():
            raise ValidationError("URI is required.")
        return JSONResponse(content=await upstream.geocode(api_key, uri))

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "service": "mappable-bff"}

    # --- Single-page app shell (must stay the last route) ---
    @app.get("/{full_path:path}", response_class=HTMLResponse, include_in_schema=False)
    async def spa_shell(request: Request, full_path: str):
        if full_path == "api" or full_path.startswith("api/"):
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "Not Found"})
        return templates.TemplateResponse(request, "index.html", {"map_script_url": "/api/map-script"})

    return app


app = create_app()
