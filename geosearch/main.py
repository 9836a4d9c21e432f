"""FastAPI application for the viewport property search API."""
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Request, Response
from fastapi.responses import JSONResponse

from geosearch.config import settings
from geosearch.database import get_session_factory, engine, Base
from geosearch.errors import GeoSearchError, RateLimitError, ValidationError
from geosearch.logging_config import LoggingConfig
from geosearch.schemas import (
    BucketResponse,
    DrillTargetResponse,
    ListItemResponse,
    ListResponse,
    PointResponse,
    SearchMeta,
    SearchResponse,
)
from geosearch.services.bucketing import MODE_CLUSTERS
from geosearch.services.cache import TTLCache
from geosearch.services.queries import QueryExecutor, SqlAlchemyQueryExecutor
from geosearch.services.rate_limit import LimitsRateLimiter, RateLimiter, caller_id_from_headers
from geosearch.services.search_service import SearchResult, SearchService
from geosearch.services.validation import (
    validate_drill_target_request,
    validate_list_request,
    validate_search_request,
)


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and initialize database tables on startup."""
    LoggingConfig.setup_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("Search API started", extra={"database": engine.url.get_backend_name()})
    yield


# Create FastAPI app
app = FastAPI(
    title="Viewport Property Search API",
    description="Map clusters and property lists with one consistent total per viewport",
    version="1.0.0",
    lifespan=lifespan
)


# ============== Dependencies ==============

def get_executor(session_factory=Depends(get_session_factory)) -> QueryExecutor:
    return SqlAlchemyQueryExecutor(session_factory)


def get_map_cache(request: Request) -> Optional[TTLCache]:
    """Per-application map cache; disabled when the TTL is not positive."""
    if settings.MAP_CACHE_TTL_SECONDS <= 0:
        return None
    cache = getattr(request.app.state, "map_cache", None)
    if cache is None:
        cache = TTLCache(maxsize=settings.MAP_CACHE_MAX_SIZE, ttl=settings.MAP_CACHE_TTL_SECONDS)
        request.app.state.map_cache = cache
    return cache


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        limiter = LimitsRateLimiter()
        request.app.state.rate_limiter = limiter
    return limiter


def get_search_service(
    executor: QueryExecutor = Depends(get_executor),
    cache: Optional[TTLCache] = Depends(get_map_cache),
) -> SearchService:
    return SearchService(executor, cache=cache)


async def enforce_rate_limit(
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Reject the call before any parsing or querying once the caller is over quota."""
    client_host = request.client.host if request.client else None
    decision = limiter.check(caller_id_from_headers(request.headers, client_host))
    if not decision.allowed:
        raise RateLimitError(decision.retry_after, decision.reset_at)
    response.headers.update(decision.headers())


async def read_json_body(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("body", "must be valid JSON") from None


# ============== Error Handlers ==============

@app.exception_handler(GeoSearchError)
async def geosearch_error_handler(request: Request, exc: GeoSearchError):
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after), "X-RateLimit-Remaining": "0"}
        if exc.reset_at is not None:
            headers["X-RateLimit-Reset"] = str(int(exc.reset_at))
    if exc.status_code >= 500:
        logger.error("Search failed: %s", exc, extra={"path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc, extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Viewport Property Search API"}


# ============== Search Endpoints ==============

@app.post(
    "/api/search",
    response_model=SearchResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def search_endpoint(
    request: Request,
    service: SearchService = Depends(get_search_service)
):
    """
    Search a map viewport.

    Below the properties zoom threshold the map payload is clusters, at or
    above it individual pins. ``total`` is always the count of the filtered
    list query; cluster counts sum to it.
    """
    search_request = validate_search_request(await read_json_body(request))
    result = await service.search(search_request)
    return build_search_response(result)


@app.post(
    "/api/search/list",
    response_model=ListResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def list_endpoint(
    request: Request,
    service: SearchService = Depends(get_search_service)
):
    """Fetch another page of the list without recomputing the map."""
    list_request = validate_list_request(await read_json_body(request))
    listed = await service.list_page(list_request)
    return ListResponse(
        list_items=[ListItemResponse.model_validate(row) for row in listed.page.items],
        total=listed.total,
        pagination=listed.page.metadata(),
    )


@app.post(
    "/api/search/drill-target",
    response_model=DrillTargetResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def drill_target_endpoint(
    request: Request,
    service: SearchService = Depends(get_search_service)
):
    """Compute the camera target for a clicked cluster."""
    drill_request = validate_drill_target_request(await read_json_body(request))
    target = service.drill_target(drill_request)
    return DrillTargetResponse.model_validate(target)


def build_search_response(result: SearchResult) -> SearchResponse:
    item_model = BucketResponse if result.mode == MODE_CLUSTERS else PointResponse
    return SearchResponse(
        mode=result.mode,
        map_data=[item_model.model_validate(item) for item in result.map_data],
        list_items=[ListItemResponse.model_validate(row) for row in result.list_items],
        total=result.total,
        pagination=result.page.metadata(),
        meta=SearchMeta(**result.meta),
    )
