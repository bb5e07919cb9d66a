"""
pgnfetch HTTP server.

Routes:
  POST /fetch-pgn -> Render a game page and return its move list
  GET  /health    -> Gate and connection status
  GET  /          -> Same as /health

Every route answers with permissive CORS headers; OPTIONS preflights are
answered with 204 before routing.

Typed errors from the fetch service are mapped to responses here and only
here. Anything unclassified is logged with request_id, url and phase and
answered with a generic "server error".
"""

import asyncio
import functools
import json
import signal
import uuid

from aiohttp import web
from pydantic import ValidationError

from pgnfetch.api.schemas import ErrorResponse, FetchPgnRequest, FetchPgnResponse, HealthResponse
from pgnfetch.errors import (
    ErrorCode,
    FetcherError,
    InvalidInputError,
    pgn_not_found,
    server_error,
)
from pgnfetch.service import FetchTrace, PgnFetchService
from pgnfetch.utils.config import Settings
from pgnfetch.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

SERVICE_KEY = web.AppKey("service", PgnFetchService)
SETTINGS_KEY = web.AppKey("settings", Settings)

CORS_ALLOW_METHODS = "GET,POST,OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type"


def _new_request_id() -> str:
    return uuid.uuid4().hex[:12]


def _error_response(error: FetcherError, request_id: str) -> web.Response:
    body = ErrorResponse(**error.to_dict(), request_id=request_id)
    return web.json_response(body.model_dump(exclude_none=True), status=error.http_status)


def _apply_cors(headers, allow_origin: str) -> None:
    headers["Access-Control-Allow-Origin"] = allow_origin
    headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
    headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Add CORS headers and short-circuit preflight requests."""
    allow_origin = request.app[SETTINGS_KEY].server.cors_allow_origin

    if request.method == "OPTIONS":
        response = web.Response(status=204)
        _apply_cors(response.headers, allow_origin)
        return response

    try:
        response = await handler(request)
    except web.HTTPException as e:
        _apply_cors(e.headers, allow_origin)
        raise
    _apply_cors(response.headers, allow_origin)
    return response


async def _read_fetch_request(request: web.Request) -> FetchPgnRequest:
    """Parse the request body.

    An empty body is treated as an empty object so the missing URL is
    reported as such.

    Raises:
        InvalidInputError: If the body is not a JSON object.
    """
    raw = await request.read()
    try:
        text = raw.decode(request.charset or "utf-8")
    except (UnicodeDecodeError, LookupError) as e:
        # Undecodable bytes or an unknown charset in Content-Type
        raise InvalidInputError("Invalid JSON body", received=type(e).__name__) from e
    if not text.strip():
        return FetchPgnRequest()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidInputError("Invalid JSON body", received=e.msg) from e
    except (ValueError, RecursionError) as e:
        raise InvalidInputError("Invalid JSON body", received=type(e).__name__) from e
    try:
        return FetchPgnRequest.model_validate(payload)
    except ValidationError as e:
        raise InvalidInputError("Request body must be a JSON object") from e


async def handle_fetch_pgn(request: web.Request) -> web.Response:
    """Fetch the move list of the page named in the body."""
    service = request.app[SERVICE_KEY]
    request_id = _new_request_id()

    try:
        payload = await _read_fetch_request(request)
    except InvalidInputError as e:
        logger.info("Rejected fetch request", request_id=request_id, error=e.message)
        return _error_response(e, request_id)

    trace = FetchTrace(url=payload.url)
    with LogContext(request_id=request_id, url=str(payload.url)[:200]):
        logger.info("Fetch request received")
        try:
            outcome = await service.fetch(payload.url, trace=trace)
        except FetcherError as e:
            if e.code is ErrorCode.BAD_REQUEST:
                logger.info("Rejected fetch request", error=e.message)
            else:
                logger.warning(
                    "Fetch failed",
                    error_code=e.code.value,
                    error=e.message,
                    phase=trace.phase,
                    elapsed_ms=trace.elapsed_ms,
                )
            return _error_response(e, request_id)
        except Exception:
            logger.exception(
                "Unhandled error during fetch",
                phase=trace.phase,
                elapsed_ms=trace.elapsed_ms,
            )
            return _error_response(server_error(), request_id)

        if not outcome.found:
            return _error_response(pgn_not_found(), request_id)

        body = FetchPgnResponse(
            pgn=outcome.pgn,
            moves=len(outcome.tokens),
            strategy=outcome.strategy,
            elapsed_ms=outcome.elapsed_ms,
            request_id=request_id,
        )
        return web.json_response(body.model_dump())


async def handle_health(request: web.Request) -> web.Response:
    """Health check endpoint."""
    service = request.app[SERVICE_KEY]
    health = HealthResponse(**service.health())
    logger.debug("health_check", status=health.status, in_flight=health.in_flight)
    return web.json_response(health.model_dump())


async def _close_service(app: web.Application) -> None:
    await app[SERVICE_KEY].close()


def create_app(service: PgnFetchService, settings: Settings | None = None) -> web.Application:
    """Create aiohttp application bound to a fetch service.

    The service is closed when the application is cleaned up.
    """
    app = web.Application(middlewares=[cors_middleware])
    app[SERVICE_KEY] = service
    app[SETTINGS_KEY] = settings or service.settings

    # Routes
    app.router.add_post("/fetch-pgn", handle_fetch_pgn)
    app.router.add_get("/health", handle_health)

    # Root health check
    app.router.add_get("/", handle_health)

    app.on_cleanup.append(_close_service)
    return app


async def run_server(
    settings: Settings,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Run the HTTP server until SIGINT or SIGTERM.

    Raises:
        ConfigurationError: If the remote browser token is missing.
    """
    host = host or settings.server.host
    port = port or settings.server.port

    service = PgnFetchService.from_settings(settings)
    app = create_app(service, settings)

    logger.info(
        "Starting pgnfetch server",
        host=host,
        port=port,
        endpoint=settings.browser.redacted_endpoint(),
        max_slots=settings.concurrency.max_slots,
    )

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"pgnfetch server listening on http://{host}:{port}")

    # Wait for shutdown signal
    stop_event = asyncio.Event()

    def handle_signal(sig: int) -> None:
        logger.info("Received shutdown signal", signal=sig)
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, functools.partial(handle_signal, sig))

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down pgnfetch server")
        # on_cleanup closes the service and its browser connection
        await runner.cleanup()
