"""
Main API module for the shortener.

Responsibilities:
    - Expose HTTP endpoints that shorten, resolve, list and delete URLs
    - Map typed results to status codes (201 vs 409, 307 vs 410 vs 404)
    - Hand each request an opaque owner identity via a `user_id` cookie

Architecture:
    - App Factory pattern (create_app) for test isolation and DI.
    - The URLManager holds all behaviour; routes only translate HTTP.
    - Storage backend chosen from configuration (memory, file journal, postgres).
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from pydantic import BaseModel

from shortener.config import load_settings
from shortener.manager.delete_worker import DeleteRejected
from shortener.manager.url_manager import URLManager
from shortener.storage.models import CreateResult, StorageError
from shortener.storage.storage_factory import get_storage

USER_COOKIE = "user_id"
DELETE_ENQUEUE_TIMEOUT = 1.0


class ShortenRequest(BaseModel):
    """Request payload for POST /api/shorten."""
    url: str


class BatchShortenItem(BaseModel):
    correlation_id: str
    original_url: str


def _is_http_url(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def create_app(manager: Optional[URLManager] = None) -> FastAPI:
    """
    Factory function to build and configure a new FastAPI app instance.

    Args:
        manager: Pre-built URLManager (tests). When omitted, a backend is
            selected from the environment and a manager is built around it.

    Returns:
        FastAPI: Configured app. Its shutdown stops the delete worker and
        closes the backend (final journal checkpoint for the file backend).
    """
    cfg = load_settings()
    if not logging.getLogger().handlers:
        logging.basicConfig(level=cfg.LOG_LEVEL)
    log = logging.getLogger("shortener")

    if manager is None:
        manager = URLManager(storage=get_storage(), delete_queue_size=cfg.DELETE_QUEUE_SIZE, logger=log)
    log.info("Shortener storage backend: %s", type(manager.storage).__name__)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        manager.stop()

    app = FastAPI(title="Shortener", description="URL shortener with pluggable storage", lifespan=lifespan)
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.state.manager = manager

    def _short_url(code: str) -> str:
        return f"{cfg.BASE_URL}/{code}"

    def _shorten(owner_id: str, url: str) -> CreateResult:
        try:
            return manager.create_short_url(owner_id, url)
        except StorageError:
            log.exception("failed to create short URL for %s", url)
            raise HTTPException(status_code=500, detail="Failed to create short URL")

    # ----------------------------------------------------------------
    # Owner identity
    # ----------------------------------------------------------------
    @app.middleware("http")
    async def assign_owner(request: Request, call_next):
        user_id = request.cookies.get(USER_COOKIE)
        issued = not user_id
        if issued:
            user_id = uuid.uuid4().hex
        request.state.user_id = user_id
        request.state.owner_issued = issued
        response = await call_next(request)
        if issued:
            response.set_cookie(USER_COOKIE, user_id, httponly=True)
        return response

    # ----------------------------------------------------------------
    # Routes
    # ----------------------------------------------------------------
    @app.get("/ping")
    def ping() -> Response:
        try:
            manager.ping()
        except StorageError:
            log.exception("storage ping failed")
            return Response(status_code=500)
        return Response(status_code=200)

    @app.post("/")
    async def shorten_text(request: Request) -> Response:
        url = (await request.body()).decode("utf-8", errors="replace").strip()
        if not _is_http_url(url):
            raise HTTPException(status_code=400, detail="Invalid URL format")
        result = await run_in_threadpool(_shorten, request.state.user_id, url)
        return PlainTextResponse(_short_url(result.short_code), status_code=409 if result.conflict else 201)

    @app.post("/api/shorten")
    def shorten_json(req: ShortenRequest, request: Request) -> Response:
        if not _is_http_url(req.url):
            raise HTTPException(status_code=400, detail="Invalid URL format")
        result = _shorten(request.state.user_id, req.url)
        return JSONResponse({"result": _short_url(result.short_code)}, status_code=409 if result.conflict else 201)

    @app.post("/api/shorten/batch", status_code=201)
    def shorten_batch(items: List[BatchShortenItem], request: Request) -> List[Dict[str, Any]]:
        for item in items:
            if not _is_http_url(item.original_url):
                raise HTTPException(
                    status_code=400, detail=f"Invalid URL format for correlation_id: {item.correlation_id}"
                )
        try:
            results = manager.create_batch(
                request.state.user_id, [(item.correlation_id, item.original_url) for item in items]
            )
        except StorageError:
            log.exception("batch shorten failed")
            raise HTTPException(status_code=500, detail="Failed to create short URL for batch")
        return [{"correlation_id": cid, "short_url": _short_url(res.short_code)} for cid, res in results]

    @app.get("/api/user/urls")
    def user_urls(request: Request) -> Response:
        if request.state.owner_issued:
            raise HTTPException(status_code=401, detail="Unauthorized")
        try:
            records = manager.list_user_urls(request.state.user_id)
        except StorageError:
            log.exception("listing urls failed")
            raise HTTPException(status_code=500, detail="Internal server error")
        if not records:
            return Response(status_code=204)
        return JSONResponse(
            [{"short_url": _short_url(r.short_code), "original_url": r.original_url} for r in records]
        )

    @app.delete("/api/user/urls", status_code=202)
    def delete_user_urls(request: Request, codes: List[str] = Body(...)) -> Response:
        try:
            manager.delete_urls(request.state.user_id, codes, timeout=DELETE_ENQUEUE_TIMEOUT)
        except DeleteRejected as exc:
            log.warning("delete request rejected: %s", exc)
            raise HTTPException(status_code=503, detail="Delete queue is full")
        return Response(status_code=202)

    @app.get("/{short_code}")
    def redirect(short_code: str) -> Response:
        try:
            result = manager.get_original_url(short_code)
        except StorageError:
            log.exception("lookup of %s failed", short_code)
            raise HTTPException(status_code=500, detail="Internal server error")
        if result.is_deleted:
            raise HTTPException(status_code=410, detail="Short URL has been deleted")
        if not result.is_found:
            raise HTTPException(status_code=404, detail="Short URL not found")
        return RedirectResponse(url=result.original_url, status_code=307)

    return app


# `uvicorn main:app` and `from main import app` continue to work.
app = create_app()
