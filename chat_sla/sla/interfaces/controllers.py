"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA analytics endpoints.

Controllers are thin - they delegate to application services.
"""

import time
from typing import Optional
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from chat_sla.config import RecalculationTrigger, get_settings
from chat_sla.core import ConfigurationException, ValidationException
from chat_sla.infrastructure.database import get_session
from chat_sla.shared.infrastructure.logging import SLAEventLogger, get_logger
from chat_sla.sla.application import (
    SLAMetricsService,
    SLAReportingService,
    ISLAConfigProvider,
    ConversationFilter,
    RecalculationQuery,
    BreachQuery,
    MetricsResponse,
    BreachListResponse,
    RecalculationResponse,
    ConversationSLAResponse,
    ConfigResponse,
)
from chat_sla.sla.domain.office_hours import to_utc
from chat_sla.sla.infrastructure import (
    SQLAlchemyConversationRepository,
    SQLAlchemySLAMetricsRepository,
)

logger = get_logger(__name__)
events = SLAEventLogger()
router = APIRouter(prefix="/sla", tags=["SLA Analytics"])


# ========== Example payloads for Swagger ==========

RECALCULATION_RESPONSE_EXAMPLE = {
    "success": True,
    "processed": 1250,
    "failed": 0,
    "total": 1250,
    "batches": 3,
    "duration_ms": 4210,
    "enabled_metrics": {
        "pickup": True,
        "first_response": True,
        "avg_response": False,
        "resolution": False
    },
    "errors": []
}

CONVERSATION_SLA_RESPONSE_EXAMPLE = {
    "conversation_id": "chat-001",
    "opened_at": "2025-01-07T15:00:00Z",
    "closed_at": "2025-01-07T19:00:00Z",
    "agent_id": "agent-7",
    "channel": "whatsapp",
    "sla_available": True,
    "wall_clock": {
        "pickup_time": 90,
        "first_response_time": 240,
        "avg_response_time": 60.0,
        "resolution_time": 14400,
        "pickup_sla": "compliant",
        "first_response_sla": "compliant",
        "avg_response_sla": "compliant",
        "resolution_sla": "breached",
        "overall_sla": "compliant"
    },
    "calculated_at": "2025-01-07T19:00:05Z"
}


# ========== Dependencies ==========

def get_config_provider(request: Request) -> ISLAConfigProvider:
    """Get the application's hot-reloading SLA configuration."""
    manager = getattr(request.app.state, "sla_config_manager", None)
    if manager is None:
        raise ConfigurationException("SLA configuration not loaded")
    return manager


async def get_metrics_service(
    session: AsyncSession = Depends(get_session),
    config_provider: ISLAConfigProvider = Depends(get_config_provider)
) -> SLAMetricsService:
    """Get SLA metrics service instance."""
    return SLAMetricsService(
        SQLAlchemyConversationRepository(session),
        SQLAlchemySLAMetricsRepository(session),
        config_provider,
        events,
    )


async def get_reporting_service(
    session: AsyncSession = Depends(get_session),
    config_provider: ISLAConfigProvider = Depends(get_config_provider)
) -> SLAReportingService:
    """Get SLA reporting service instance."""
    return SLAReportingService(SQLAlchemySLAMetricsRepository(session), config_provider)


def build_filter(
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    agent_id: Optional[str],
    channel: Optional[str]
) -> ConversationFilter:
    """Build a conversation filter, defaulting to the look-back window."""
    end = to_utc(end_date) if end_date else datetime.now(timezone.utc)
    start = (
        to_utc(start_date) if start_date
        else end - timedelta(days=get_settings().default_lookback_days)
    )
    agent_ids = [a.strip() for a in agent_id.split(",") if a.strip()] if agent_id else []

    try:
        return ConversationFilter(
            start_date=start,
            end_date=end,
            agent_ids=agent_ids,
            channel=channel,
        )
    except ValidationError as e:
        raise ValidationException(
            "Invalid query parameters",
            {"errors": [error["msg"] for error in e.errors()]}
        )


# ========== Route Handlers ==========

@router.get(
    "/metrics",
    response_model=MetricsResponse,
    summary="Get aggregate SLA metrics",
    description="""
    Compliance rates, average durations and first-response percentiles
    for both wall-clock and business-hours time.

    **Query Parameters:**
    - `start_date` / `end_date`: Range on conversation open time (default: last 30 days)
    - `agent_id`: Comma-separated agent ids
    - `channel`: whatsapp, facebook, telegram, livechat, b2cbotapi
    - `include_trend`: Also report the preceding period of equal length

    Conversations whose SLA data is unavailable are counted but never
    reported as compliant or breached.
    """
)
async def get_sla_metrics(
    start_date: Optional[datetime] = Query(None, description="Range start (ISO 8601)"),
    end_date: Optional[datetime] = Query(None, description="Range end (ISO 8601)"),
    agent_id: Optional[str] = Query(None, description="Comma-separated agent ids"),
    channel: Optional[str] = Query(None, description="Messaging channel"),
    include_trend: bool = Query(False, description="Include previous-period comparison"),
    reporting_service: SLAReportingService = Depends(get_reporting_service)
):
    start_time = time.perf_counter()
    conversation_filter = build_filter(start_date, end_date, agent_id, channel)

    response = await reporting_service.get_metrics(conversation_filter, include_trend)

    events.log_api_call(
        "/sla/metrics", "GET", 200,
        total_conversations=response.total_conversations,
        duration_ms=int((time.perf_counter() - start_time) * 1000),
    )
    return response


@router.get(
    "/breaches",
    response_model=BreachListResponse,
    summary="List SLA breaches",
    description="""
    Paginated conversations whose overall SLA verdict is breached.

    **Query Parameters:**
    - `page`, `page_size` (max 100)
    - `start_date` / `end_date`, `agent_id`, `channel`: Same as /sla/metrics
    - `time_system`: wall_clock (default) or business_hours
    - `breach_type`: pickup, first_response, avg_response, resolution
    - `sort_by`: opened_at, closed_at, time_to_pickup, first_response_time,
      avg_response_time, resolution_time
    - `sort_order`: asc or desc
    """
)
async def list_sla_breaches(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    agent_id: Optional[str] = Query(None),
    channel: Optional[str] = Query(None),
    time_system: str = Query("wall_clock"),
    breach_type: Optional[str] = Query(None),
    sort_by: str = Query("opened_at"),
    sort_order: str = Query("desc"),
    reporting_service: SLAReportingService = Depends(get_reporting_service)
):
    conversation_filter = build_filter(start_date, end_date, agent_id, channel)

    try:
        query = BreachQuery(
            filter=conversation_filter,
            time_system=time_system,
            breach_type=breach_type,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            page_size=page_size,
        )
    except ValidationError as e:
        raise ValidationException(
            "Invalid query parameters",
            {"errors": [error["msg"] for error in e.errors()]}
        )

    return await reporting_service.list_breaches(query)


@router.post(
    "/recalculate",
    response_model=RecalculationResponse,
    summary="Recalculate SLA metrics",
    description="""
    Recompute SLA metrics for every conversation opened in a date range,
    or for a single conversation. Use after changing office hours or targets.

    **Query Parameters:**
    - `start_date`: Default 30 days before `end_date`
    - `end_date`: Default now; cannot be in the future
    - `conversation_id`: Recalculate only this conversation
    - `batch_size`: Conversations per batch (default 500, max 2000)

    The range cannot exceed 365 days. A conversation that fails is stored
    as "SLA data unavailable" and the run continues.
    """,
    responses={
        200: {
            "description": "Recalculation finished",
            "content": {
                "application/json": {
                    "example": RECALCULATION_RESPONSE_EXAMPLE
                }
            }
        },
        400: {"description": "Invalid date range"}
    }
)
async def recalculate_sla_metrics(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    conversation_id: Optional[str] = Query(None),
    batch_size: int = Query(500, ge=1, le=2000),
    metrics_service: SLAMetricsService = Depends(get_metrics_service)
):
    query = RecalculationQuery(
        start_date=start_date,
        end_date=end_date,
        conversation_id=conversation_id,
        batch_size=batch_size,
    )

    result = await metrics_service.recalculate(query)

    events.log_api_call(
        "/sla/recalculate", "POST", 200,
        processed=result.processed,
        failed=result.failed,
        duration_ms=result.duration_ms,
    )
    return result.to_response()


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationSLAResponse,
    summary="Get conversation SLA metrics",
    responses={
        200: {
            "description": "Stored SLA metrics",
            "content": {
                "application/json": {
                    "example": CONVERSATION_SLA_RESPONSE_EXAMPLE
                }
            }
        },
        404: {"description": "No SLA record for this conversation"}
    }
)
async def get_conversation_sla(
    conversation_id: str,
    reporting_service: SLAReportingService = Depends(get_reporting_service)
):
    return await reporting_service.get_conversation(conversation_id)


@router.post(
    "/conversations/{conversation_id}/recalculate",
    response_model=ConversationSLAResponse,
    summary="Recalculate one conversation",
    responses={404: {"description": "Conversation not found"}}
)
async def recalculate_conversation_sla(
    conversation_id: str,
    metrics_service: SLAMetricsService = Depends(get_metrics_service),
    reporting_service: SLAReportingService = Depends(get_reporting_service)
):
    await metrics_service.recalculate_conversation(conversation_id, RecalculationTrigger.UPDATE)
    return await reporting_service.get_conversation(conversation_id)


@router.get(
    "/config",
    response_model=ConfigResponse,
    summary="Get SLA configuration",
    description="Current office hours, targets (seconds) and enabled metrics."
)
async def get_sla_config(
    reporting_service: SLAReportingService = Depends(get_reporting_service)
):
    return reporting_service.get_configuration()


sla_router = router
