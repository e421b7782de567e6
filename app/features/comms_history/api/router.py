"""
Communication history routes.

Per-entity summaries, the flat contact timeline, transcripts and email
history. Partial failures keep a 200; fatal failures render {"error": ...}.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from app.auth.verify import graph_token_dependency, optional_graph_token
from app.config import settings
from app.features.comms_history.services.aggregation_service import AggregationPipeline
from app.infrastructure.observability.logging import get_logger
from app.models.api.timeline_response import (
    AggregateResponse,
    EntityTimelineResponse,
    ErrorResponse,
    EventResponse,
    TimelineResponse,
)
from app.models.domain.errors import FatalRequestError, RemoteApiError
from app.models.domain.timeline_domain import AggregationRequest, parse_lookback_days
from app.services.dialpad_service import DialpadService
from app.services.graph_mail_service import GraphMailService
from app.services.remote_api_client import RemoteApiClient
from app.services.stats_cache import StatsCache

logger = get_logger(__name__)

router = APIRouter(tags=["comms-history"], responses={500: {"model": ErrorResponse}})

# shared across requests; bypassed with ?fresh=true
stats_cache = StatsCache(
    max_entries=settings.STATS_CACHE_MAX_ENTRIES,
    ttl_seconds=settings.STATS_CACHE_TTL_SECONDS,
)


def build_pipeline(graph_token: str | None) -> AggregationPipeline:
    dialpad = DialpadService(
        RemoteApiClient(settings.dialpad_client_config(), "Dialpad"),
        poll_policy=settings.export_poll_policy(),
        max_items=settings.PAGINATION_MAX_ITEMS,
        max_pages=settings.PAGINATION_MAX_PAGES,
        page_size=settings.DIRECTORY_PAGE_SIZE,
        download_timeout=settings.DOWNLOAD_TIMEOUT_SECONDS,
        cache=stats_cache if settings.STATS_CACHE_ENABLED else None,
    )
    graph = None
    if graph_token:
        graph = GraphMailService(
            RemoteApiClient(settings.graph_client_config(graph_token), "Graph"),
            max_items=settings.PAGINATION_MAX_ITEMS,
            max_pages=settings.PAGINATION_MAX_PAGES,
            page_size=settings.MAIL_PAGE_SIZE,
        )
    return AggregationPipeline(
        dialpad,
        graph,
        mailboxes=settings.GRAPH_MAILBOXES,
        concurrency=settings.FANOUT_CONCURRENCY,
    )


async def pipeline_dependency(graph_token: str | None = Depends(optional_graph_token)):
    pipeline = build_pipeline(graph_token)
    try:
        yield pipeline
    finally:
        await pipeline.close()


def _request(
    days: str | None, contact: str | None = None, subject: str | None = None, fresh: bool = False
) -> AggregationRequest:
    return AggregationRequest(
        contact=(contact or "").strip() or None,
        days=parse_lookback_days(days, settings.DEFAULT_LOOKBACK_DAYS),
        text_filter=(subject or "").strip() or None,
        use_cache=not fresh,
    )


def _fatal(operation: str, error: Exception) -> FatalRequestError:
    logger.error("Request failed", operation=operation, error_type=type(error).__name__, error=str(error))
    status_code = 502 if isinstance(error, RemoteApiError) else 500
    return FatalRequestError(str(error) or f"{operation} failed", operation=operation, status_code=status_code)


@router.get("/aggregate", response_model=AggregateResponse)
async def aggregate_all(
    days: str | None = Query(default=None, description="Lookback window in days (default 30)"),
    subject: str | None = Query(default=None, description="Optional subject/body filter"),
    fresh: bool = Query(default=False, description="Bypass the export cache"),
    pipeline: AggregationPipeline = Depends(pipeline_dependency),
):
    """Every user (and mailbox, when signed in) with their history."""
    try:
        timelines = await pipeline.aggregate(_request(days, subject=subject, fresh=fresh))
    except FatalRequestError:
        raise
    except Exception as e:
        raise _fatal("aggregate", e) from e

    return AggregateResponse(entities=[EntityTimelineResponse.from_domain(t) for t in timelines])


@router.get("/aggregate/contact/{identity}", response_model=AggregateResponse)
async def aggregate_for_contact(
    identity: str = Path(..., min_length=1, description="Phone number or email address"),
    days: str | None = Query(default=None, description="Lookback window in days (default 30)"),
    subject: str | None = Query(default=None, description="Optional subject/body filter"),
    fresh: bool = Query(default=False, description="Bypass the export cache"),
    pipeline: AggregationPipeline = Depends(pipeline_dependency),
):
    """Only entities that interacted with the contact, with matching events."""
    try:
        timelines = await pipeline.aggregate_for_contact(
            _request(days, contact=identity, subject=subject, fresh=fresh)
        )
    except FatalRequestError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        raise _fatal("aggregate_for_contact", e) from e

    return AggregateResponse(entities=[EntityTimelineResponse.from_domain(t) for t in timelines])


@router.get("/timeline", response_model=TimelineResponse)
async def contact_timeline(
    contact: str = Query(..., min_length=1, description="Phone number or email address"),
    days: str | None = Query(default=None, description="Lookback window in days (default 30)"),
    subject: str | None = Query(default=None, description="Optional subject/body filter"),
    fresh: bool = Query(default=False, description="Bypass the export cache"),
    pipeline: AggregationPipeline = Depends(pipeline_dependency),
):
    """Flat conversation view with one contact, newest first."""
    try:
        events = await pipeline.build_timeline(_request(days, contact=contact, subject=subject, fresh=fresh))
    except FatalRequestError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        raise _fatal("timeline", e) from e

    return TimelineResponse(events=[EventResponse.from_domain(event) for event in events], total_count=len(events))


@router.get("/transcripts/{call_id}")
async def get_transcript(
    call_id: str = Path(..., min_length=1),
    pipeline: AggregationPipeline = Depends(pipeline_dependency),
) -> dict:
    """Dialpad transcript for a call, passed through unchanged."""
    try:
        return await pipeline.get_transcript(call_id)
    except Exception as e:
        raise _fatal("get_transcript", e) from e


@router.get("/email/history", response_model=TimelineResponse)
async def email_history(
    email: str = Query(..., min_length=3, description="Address to search for"),
    subject: str | None = Query(default=None, description="Optional subject filter"),
    _token: str = Depends(graph_token_dependency),
    pipeline: AggregationPipeline = Depends(pipeline_dependency),
):
    """Messages with an address across the configured mailboxes."""
    try:
        events = await pipeline.email_history(_request(None, contact=email, subject=subject))
    except FatalRequestError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        raise _fatal("email_history", e) from e

    return TimelineResponse(events=[EventResponse.from_domain(event) for event in events], total_count=len(events))


@router.get("/email/recent", response_model=TimelineResponse)
async def recent_email_history(
    email: str = Query(..., min_length=3, description="Address to filter on"),
    subject: str | None = Query(default=None, description="Optional subject filter"),
    _token: str = Depends(graph_token_dependency),
    pipeline: AggregationPipeline = Depends(pipeline_dependency),
):
    """The caller's inbox and sent items, filtered to one correspondent."""
    try:
        events = await pipeline.recent_email_history(_request(None, contact=email, subject=subject))
    except FatalRequestError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        raise _fatal("recent_email_history", e) from e

    return TimelineResponse(events=[EventResponse.from_domain(event) for event in events], total_count=len(events))
