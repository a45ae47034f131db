"""
FastAPI application exposing the sitemap scraping API.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel

from sitemapcore import __version__
from sitemapcore.config import Config
from sitemapcore.errors import InputValidationError, SitemapCoreError
from sitemapcore.observability import export_prometheus
from sitemapcore.service import SitemapService

logger = structlog.get_logger(__name__)


class SitemapRequest(BaseModel):
    sitemapUrl: Optional[str] = None


class ScrapeChunkRequest(BaseModel):
    urls: Optional[List[str]] = None
    sessionId: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _require_sitemap_url(body: SitemapRequest) -> str:
    if not body.sitemapUrl or not body.sitemapUrl.strip():
        raise InputValidationError("Sitemap URL is required")
    return body.sitemapUrl


def create_app(service: Optional[SitemapService] = None, config: Optional[Config] = None) -> FastAPI:
    """
    Build the API around one SitemapService.

    The service is created from ``config`` when not supplied and lives for
    the lifetime of the application.
    """
    config = config or (service.config if service else Config())
    service = service or SitemapService(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting SitemapCore API", version=__version__)
        await service.initialize()
        yield
        logger.info("Shutting down SitemapCore API")
        await service.close()

    app = FastAPI(title="SitemapCore API", version=__version__, lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(InputValidationError)
    async def input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
        logger.info("Rejected request", path=request.url.path, error=str(exc))
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request body")

    @app.exception_handler(SitemapCoreError)
    async def sitemapcore_error_handler(request: Request, exc: SitemapCoreError) -> JSONResponse:
        logger.error("Request failed", path=request.url.path, error=str(exc))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", path=request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Internal server error")

    @app.post("/api/sitemap/scrape")
    async def scrape_sitemap(body: SitemapRequest) -> Any:
        """Scrape every page listed in a sitemap."""
        data = await service.scrape_sitemap(_require_sitemap_url(body))
        return {"success": True, "data": data}

    @app.post("/api/sitemap/parse")
    async def parse_sitemap(body: SitemapRequest) -> Any:
        """List a sitemap's URLs and open a session for chunked scraping."""
        data = await service.parse_sitemap(_require_sitemap_url(body))
        return {"success": True, "data": data}

    @app.post("/api/sitemap/scrape-chunk")
    async def scrape_chunk(body: ScrapeChunkRequest) -> Any:
        data = await service.scrape_chunk(body.urls or [], body.sessionId)
        return {"success": True, "data": data}

    @app.get("/api/sitemap/session/{session_id}")
    async def get_session(session_id: str) -> Any:
        session = service.get_session(session_id)
        if session is None:
            return _error(status.HTTP_404_NOT_FOUND, "Session not found")
        return {"success": True, "data": session.to_dict()}

    @app.get("/api/sitemap/health")
    async def health_check() -> Any:
        """Circuit breaker and rate limiter state of the extraction service."""
        return {"success": True, "data": service.health()}

    @app.get("/metrics")
    async def get_prometheus_metrics() -> Response:
        """Endpoint for Prometheus to scrape."""
        return Response(export_prometheus(), media_type=CONTENT_TYPE_LATEST)

    return app


def run_web_server(config: Optional[Config] = None, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Function to run the FastAPI server."""
    import uvicorn

    config = config or Config()
    host = host or config.web.host
    port = port or config.web.port
    logger.info("Starting SitemapCore API server", host=host, port=port)
    uvicorn.run(create_app(config=config), host=host, port=port, log_config=None)
