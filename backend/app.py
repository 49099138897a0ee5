# backend/app.py

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import Settings, get_settings, settings as app_settings
from .errors import classify
from .model import ErrorResponse, GenerateResponse
from .orchestrator import OrchestrationResult, RequestOrchestrator
from .utils import configure_logging

logger = logging.getLogger(__name__)

# Bao lâu kiểm tra client còn kết nối một lần (giây)
DISCONNECT_CHECK_INTERVAL = 0.5

CORS_ALLOW_METHODS = ["POST", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type", "Authorization", "X-Requested-With"]


def get_orchestrator(settings: Settings = Depends(get_settings)) -> RequestOrchestrator:
    return RequestOrchestrator(settings)


async def _run_until_disconnect(request: Request, work: Awaitable[Any]) -> Optional[Any]:
    """
    Await `work`, cancelling it if the client goes away first.
    Returns None when cancelled.
    """
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_CHECK_INTERVAL)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("[App] Client disconnected, abandoning request")
                task.cancel()
                return None
    finally:
        if not task.done():
            task.cancel()


def _error_response(status_code: int, error: str, detail: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail).model_dump(exclude_none=True)
    return JSONResponse(body, status_code=status_code)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    configure_logging(settings.LOG_LEVEL)
    if not settings.REPLICATE_API_TOKEN:
        logger.error("[App] REPLICATE_API_TOKEN is not set; /generate will fail")
    logger.info("[App] Backend model: %s", settings.REPLICATE_MODEL)
    yield


def create_app(settings: Settings = app_settings) -> FastAPI:
    app = FastAPI(title="Image Generate Relay", lifespan=lifespan)
    app.state.settings = settings
    if settings is not app_settings:
        app.dependency_overrides[get_settings] = lambda: settings

    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_methods=CORS_ALLOW_METHODS,
            allow_headers=CORS_ALLOW_HEADERS,
        )

        # Preflight luôn trả 200; origin lạ chỉ không nhận Allow-Origin.
        # Registered after CORSMiddleware so it runs first.
        @app.middleware("http")
        async def answer_preflight(request: Request, call_next):
            if request.method != "OPTIONS" or "access-control-request-method" not in request.headers:
                return await call_next(request)
            headers = {
                "Access-Control-Allow-Methods": ", ".join(CORS_ALLOW_METHODS),
                "Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
                "Vary": "Origin",
            }
            origin = request.headers.get("origin", "")
            if origin in settings.ALLOWED_ORIGINS:
                headers["Access-Control-Allow-Origin"] = origin
            return Response(status_code=200, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            return _error_response(405, "Method not allowed")
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("[App] Unhandled error on %s", request.url.path)
        err = classify(exc, secret=settings.REPLICATE_API_TOKEN)
        return JSONResponse(err.to_body(), status_code=err.status_code)

    @app.options("/generate")
    async def generate_preflight():
        return Response(status_code=200)

    @app.post(
        "/generate",
        response_model=GenerateResponse,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse},
                   502: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
    )
    async def generate(
        request: Request,
        orchestrator: RequestOrchestrator = Depends(get_orchestrator),
    ):
        raw = await request.body()
        try:
            body = json.loads(raw) if raw else {}
        except ValueError as e:
            return _error_response(400, "Invalid JSON", str(e))

        result: Optional[OrchestrationResult] = await _run_until_disconnect(
            request, orchestrator.handle(body)
        )
        if result is None:
            return _error_response(499, "client disconnected")
        if result.error is not None:
            return JSONResponse(result.error.to_body(), status_code=result.error.status_code)
        return GenerateResponse(imageUrl=result.image_url)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
