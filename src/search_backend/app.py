"""Main ASGI application entry point.

A thin router over one ``IndexBuilder``: the lifespan builds and starts the
scheduler, the routes query the selected engine.

Routes:
    GET  /query            ranked, paginated search
    GET  /types            registered document types
    GET  /health           engine and scheduler status
    POST /refresh/{type}   run a refresh cycle for one type now
    GET  /metrics          Prometheus exposition

Usage:
    python -m search_backend.app
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import re

from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from search_backend.collators import CatalogCollatorFactory, TechDocsCollatorFactory
from search_backend.config import Settings
from search_backend.domain.model import SearchQuery
from search_backend.errors import EngineUnavailableError, QueryTranslationError
from search_backend.indexing import IndexBuilder
from search_backend.observability import get_metrics, get_metrics_content_type
from search_backend.search import create_search_engine


logger = logging.getLogger(__name__)

_FILTER_PARAM = re.compile(r"^filters\[(?P<key>[^\]]+)\]$")


def build_index_builder(settings: Settings) -> IndexBuilder:
    """Select the engine and register the collators configured in ``settings``."""
    builder = IndexBuilder(
        create_search_engine(settings),
        start_delay_seconds=settings.scheduler_start_delay_seconds,
        cycle_timeout_seconds=settings.cycle_timeout_seconds,
    )
    headers = settings.auth_headers()
    if settings.catalog_url:
        builder.add_collator(
            factory=CatalogCollatorFactory(
                settings.catalog_url,
                headers=headers,
                page_size=settings.catalog_page_size,
                timeout=settings.http_timeout,
            ),
            refresh_interval_seconds=settings.catalog_interval(),
        )
        if settings.techdocs_url:
            builder.add_collator(
                factory=TechDocsCollatorFactory(
                    settings.catalog_url,
                    settings.techdocs_url,
                    headers=headers,
                    page_size=settings.catalog_page_size,
                    parallelism=settings.techdocs_parallelism,
                    timeout=settings.http_timeout,
                ),
                refresh_interval_seconds=settings.techdocs_interval(),
            )
    else:
        logger.warning("CATALOG_URL is not set; no collators registered")
    return builder


def parse_search_query(request: Request, default_page_limit: int) -> SearchQuery:
    """Build a ``SearchQuery`` from query-string parameters.

    ``filters[key]=value`` may repeat; repeated values become an any-of list.
    """
    params = request.query_params
    filters: dict[str, str | list[str]] = {}
    for name, value in params.multi_items():
        match = _FILTER_PARAM.match(name)
        if match is None:
            continue
        key = match.group("key")
        existing = filters.get(key)
        if existing is None:
            filters[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            filters[key] = [existing, value]

    page_limit = params.get("pageLimit")
    return SearchQuery(
        term=params.get("term", ""),
        types=params.getlist("types") or None,
        filters=filters,
        page_cursor=params.get("pageCursor") or None,
        page_limit=int(page_limit) if page_limit else default_page_limit,
    )


def create_app(settings: Settings | None = None, *, builder: IndexBuilder | None = None) -> Starlette:
    """Create the search application.

    Args:
        settings: configuration; loaded from the environment when omitted
        builder: pre-populated builder; built from ``settings`` when omitted
    """
    settings = settings or Settings()
    builder = builder or build_index_builder(settings)
    engine = builder.get_search_engine()
    registrations = builder.get_document_types()

    @asynccontextmanager
    async def lifespan(app: Starlette):
        scheduler = builder.build()
        app.state.scheduler = scheduler
        await scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop(drain_timeout=settings.shutdown_drain_timeout_seconds)
            await engine.close()

    async def query_endpoint(request: Request) -> JSONResponse:
        try:
            query = parse_search_query(request, settings.page_limit_default)
        except (ValidationError, ValueError) as exc:
            return JSONResponse({"error": f"Invalid query parameters: {exc}"}, status_code=400)

        unknown = sorted(set(query.types or ()) - set(registrations))
        if unknown:
            return JSONResponse({"error": f"Unknown document types: {', '.join(unknown)}"}, status_code=400)
        if query.types is None:
            query = query.model_copy(update={"types": sorted(registrations)})

        try:
            result_set = await engine.search(query)
        except QueryTranslationError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        except EngineUnavailableError as exc:
            logger.error("Search engine unavailable: %s", exc)
            return JSONResponse({"error": "Search engine unavailable"}, status_code=503)
        return JSONResponse(result_set.to_payload())

    def types_endpoint(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "types": [
                    {"type": document_type, "refreshIntervalSeconds": registration.refresh_interval_seconds}
                    for document_type, registration in sorted(registrations.items())
                ]
            }
        )

    def health_check(request: Request) -> JSONResponse:
        scheduler = getattr(request.app.state, "scheduler", None)
        stats = scheduler.stats if scheduler is not None else {"state": "idle", "types": {}}
        return JSONResponse(
            {
                "status": "healthy" if stats["state"] == "running" else "degraded",
                "engine": engine.name,
                "scheduler": stats,
            }
        )

    def refresh_endpoint(request: Request) -> JSONResponse:
        document_type = request.path_params["type"]
        if document_type not in registrations:
            return JSONResponse({"error": f"Unknown document type: {document_type}"}, status_code=404)
        scheduler = getattr(request.app.state, "scheduler", None)
        if scheduler is None or not scheduler.trigger_refresh(document_type):
            return JSONResponse({"success": False, "message": "Scheduler not running"}, status_code=503)
        return JSONResponse({"success": True, "message": f"Refresh scheduled for '{document_type}'"}, status_code=202)

    def metrics_endpoint(request: Request) -> Response:
        return Response(get_metrics(), media_type=get_metrics_content_type())

    routes = [
        Route("/query", endpoint=query_endpoint, methods=["GET"]),
        Route("/types", endpoint=types_endpoint, methods=["GET"]),
        Route("/health", endpoint=health_check, methods=["GET"]),
        Route("/refresh/{type}", endpoint=refresh_endpoint, methods=["POST"]),
        Route("/metrics", endpoint=metrics_endpoint, methods=["GET"]),
    ]
    app = Starlette(routes=routes, lifespan=lifespan)
    logger.info("Search backend initialized with engine '%s' and %d types", engine.name, len(registrations))
    return app


def main() -> None:
    """Run the search backend with uvicorn."""
    import uvicorn

    from search_backend.observability import configure_logging, configure_trace_exporter, init_tracing

    settings = Settings()
    configure_logging(settings.log_level, settings.log_json)
    configure_trace_exporter(settings.otlp_endpoint, init_tracing())

    app = create_app(settings)
    logger.info("Starting server on %s:%d", settings.host, settings.port)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
