"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from chat_sla.config import RecalculationTrigger, TimeSystem, get_settings
from chat_sla.core import MetricComputationException, ResourceNotFoundException, ValidationException
from chat_sla.shared.infrastructure.logging import SLAEventLogger, get_logger
from chat_sla.sla.domain import (
    AggregateMetricsReporter,
    ComplianceAggregator,
    ConversationLifecycle,
    SLAConfiguration,
    SLAMetrics,
    SLAMetricsRecord,
    TimeSystemMetrics,
    calculate_sla_metrics,
)
from chat_sla.sla.domain.office_hours import to_utc
from chat_sla.sla.application.dto import (
    BreachListResponse,
    BreachQuery,
    BreachResponse,
    ConfigResponse,
    ConversationFilter,
    ConversationSLAResponse,
    DateRangeResponse,
    MetricsResponse,
    PaginationResponse,
    RecalculationQuery,
    RecalculationResponse,
    TimeSystemMetricsResponse,
    TimeSystemSummaryResponse,
    TrendResponse,
)

logger = get_logger(__name__)

# Errors returned to the caller of a recalculation run; the rest are only logged.
MAX_REPORTED_ERRORS = 10

UNAVAILABLE_MESSAGE = "SLA data unavailable"


# ========== Repository Interfaces (Dependency Inversion) ==========

class IConversationRepository(ABC):
    """Interface for reading conversation lifecycles."""

    @abstractmethod
    async def get_lifecycle(self, conversation_id: str) -> Optional[ConversationLifecycle]:
        """Get one conversation with its messages in chronological order."""

    @abstractmethod
    async def list_lifecycles(
        self,
        start_date: datetime,
        end_date: datetime,
        after_id: Optional[str] = None,
        limit: int = 500
    ) -> List[ConversationLifecycle]:
        """
        List conversations opened within [start_date, end_date] ordered by id.

        Cursor pagination: only ids strictly greater than after_id.
        """

    @abstractmethod
    async def count(self, start_date: datetime, end_date: datetime) -> int:
        """Count conversations opened within [start_date, end_date]."""


class ISLAMetricsRepository(ABC):
    """Interface for persisted SLA metric records."""

    @abstractmethod
    async def upsert_metrics(
        self,
        conversation_id: str,
        metrics: SLAMetrics,
        calculated_at: datetime
    ) -> None:
        """Insert or overwrite all metric columns of a conversation at once."""

    @abstractmethod
    async def mark_unavailable(
        self,
        conversation_id: str,
        error: str,
        calculated_at: datetime
    ) -> None:
        """Store a conversation's record without SLA fields."""

    @abstractmethod
    async def get_record(self, conversation_id: str) -> Optional[SLAMetricsRecord]:
        """Get the stored record of one conversation."""

    @abstractmethod
    async def fetch_records(self, conversation_filter: ConversationFilter) -> List[SLAMetricsRecord]:
        """All records of conversations matching the filter (unavailable included)."""

    @abstractmethod
    async def list_breaches(self, query: BreachQuery) -> Tuple[List[SLAMetricsRecord], int]:
        """One page of breached records and the total number of matches."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_configuration(self) -> SLAConfiguration:
        """Get current SLA configuration."""


# ========== Results ==========

@dataclass
class RecalculationResult:
    """Outcome of a recalculation run."""
    processed: int = 0
    failed: int = 0
    total: int = 0
    batches: int = 0
    duration_ms: int = 0
    enabled_metrics: Dict[str, bool] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def to_response(self) -> RecalculationResponse:
        return RecalculationResponse(
            success=self.success,
            processed=self.processed,
            failed=self.failed,
            total=self.total,
            batches=self.batches,
            duration_ms=self.duration_ms,
            enabled_metrics=self.enabled_metrics,
            errors=self.errors,
        )


def _time_system_response(metrics: TimeSystemMetrics) -> TimeSystemMetricsResponse:
    return TimeSystemMetricsResponse(**metrics.to_dict())


def record_to_response(record: SLAMetricsRecord) -> ConversationSLAResponse:
    """Convert a stored record to the single-conversation response."""
    if record.metrics is None:
        return ConversationSLAResponse(
            conversation_id=record.conversation_id,
            opened_at=record.opened_at,
            closed_at=record.closed_at,
            agent_id=record.agent_id,
            channel=record.channel,
            sla_available=False,
            calculated_at=record.calculated_at,
            message=UNAVAILABLE_MESSAGE,
        )

    return ConversationSLAResponse(
        conversation_id=record.conversation_id,
        opened_at=record.opened_at,
        closed_at=record.closed_at,
        agent_id=record.agent_id,
        channel=record.channel,
        sla_available=True,
        wall_clock=_time_system_response(record.metrics.wall_clock),
        business_hours=_time_system_response(record.metrics.business_hours),
        calculated_at=record.calculated_at,
    )


# ========== Application Services ==========

class SLAMetricsService:
    """
    Service for computing and storing per-conversation SLA metrics.

    Coordinates between domain logic and data access.
    """

    def __init__(
        self,
        conversation_repository: IConversationRepository,
        metrics_repository: ISLAMetricsRepository,
        config_provider: ISLAConfigProvider,
        event_logger: Optional[SLAEventLogger] = None
    ):
        self._conversation_repo = conversation_repository
        self._metrics_repo = metrics_repository
        self._config_provider = config_provider
        self._events = event_logger or SLAEventLogger()

    def calculate(
        self,
        lifecycle: ConversationLifecycle,
        configuration: Optional[SLAConfiguration] = None
    ) -> SLAMetrics:
        """
        Calculate SLA metrics for one conversation without storing them.

        Args:
            lifecycle: Conversation timestamps
            configuration: Snapshot to use (default: current configuration)

        Returns:
            Fresh SLAMetrics in both time systems
        """
        configuration = configuration or self._config_provider.get_configuration()
        return calculate_sla_metrics(lifecycle, configuration)

    async def recalculate_conversation(
        self,
        conversation_id: str,
        trigger: RecalculationTrigger = RecalculationTrigger.UPDATE
    ) -> Optional[SLAMetrics]:
        """
        Recompute and store the metrics of a single conversation.

        Corrupted lifecycle data replaces any earlier result with an
        unavailable record, and None is returned.

        Raises:
            ResourceNotFoundException: If the conversation does not exist
        """
        lifecycle = await self._conversation_repo.get_lifecycle(conversation_id)
        if lifecycle is None:
            raise ResourceNotFoundException("Conversation", conversation_id)

        configuration = self._config_provider.get_configuration()
        try:
            return await self._process(lifecycle, configuration, trigger)
        except MetricComputationException as e:
            await self._record_failure(conversation_id, e)
            return None

    async def recalculate(
        self,
        query: RecalculationQuery,
        trigger: RecalculationTrigger = RecalculationTrigger.RECALCULATION,
        now: Optional[datetime] = None
    ) -> RecalculationResult:
        """
        Recompute metrics for every conversation in a date range.

        Conversations are read in cursor-paginated batches. The configuration
        is read once for the whole run. A conversation that fails is stored
        without SLA fields and the run continues.

        Raises:
            ValidationException: If the date range is invalid
        """
        started = time.perf_counter()
        configuration = self._config_provider.get_configuration()
        result = RecalculationResult(enabled_metrics=configuration.enabled_metrics.to_dict())

        if query.conversation_id:
            lifecycle = await self._conversation_repo.get_lifecycle(query.conversation_id)
            if lifecycle is None:
                raise ResourceNotFoundException("Conversation", query.conversation_id)
            result.total = 1
            result.batches = 1
            await self._process_isolated(lifecycle, configuration, trigger, result)
            result.duration_ms = int((time.perf_counter() - started) * 1000)
            return result

        start_date, end_date = self.resolve_date_range(query.start_date, query.end_date, now)
        result.total = await self._conversation_repo.count(start_date, end_date)

        logger.info(
            "SLA recalculation started",
            extra={
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "total": result.total,
                "batch_size": query.batch_size,
                "enabled_metrics": result.enabled_metrics,
            }
        )

        cursor: Optional[str] = None
        while True:
            batch = await self._conversation_repo.list_lifecycles(
                start_date, end_date, after_id=cursor, limit=query.batch_size
            )
            if not batch:
                break

            result.batches += 1
            for lifecycle in batch:
                await self._process_isolated(lifecycle, configuration, trigger, result)

            cursor = batch[-1].conversation_id
            if len(batch) < query.batch_size:
                break

        result.duration_ms = int((time.perf_counter() - started) * 1000)

        logger.info(
            "SLA recalculation completed",
            extra={
                "processed": result.processed,
                "failed": result.failed,
                "batches": result.batches,
                "duration_ms": result.duration_ms,
            }
        )
        return result

    def resolve_date_range(
        self,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        now: Optional[datetime] = None
    ) -> Tuple[datetime, datetime]:
        """Apply defaults and validate a recalculation date range."""
        app_settings = get_settings()
        now = to_utc(now) if now else datetime.now(timezone.utc)

        end_date = to_utc(end_date) if end_date else now
        start_date = (
            to_utc(start_date) if start_date
            else end_date - timedelta(days=app_settings.default_lookback_days)
        )

        if start_date >= end_date:
            raise ValidationException(
                "Start date must be before end date",
                {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
            )

        if end_date - start_date > timedelta(days=app_settings.max_recalculation_days):
            raise ValidationException(
                f"Date range cannot exceed {app_settings.max_recalculation_days} days",
                {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
            )

        if end_date > now:
            raise ValidationException(
                "End date cannot be in the future",
                {"end_date": end_date.isoformat()}
            )

        return start_date, end_date

    async def _process(
        self,
        lifecycle: ConversationLifecycle,
        configuration: SLAConfiguration,
        trigger: RecalculationTrigger
    ) -> SLAMetrics:
        """Compute, store and log one conversation."""
        metrics = calculate_sla_metrics(lifecycle, configuration)
        await self._metrics_repo.upsert_metrics(
            lifecycle.conversation_id, metrics, datetime.now(timezone.utc)
        )

        self._events.log_calculation(lifecycle.conversation_id, metrics, trigger.value)
        for time_system in (TimeSystem.WALL_CLOCK, TimeSystem.BUSINESS_HOURS):
            breached = ComplianceAggregator.breach_types(metrics, time_system)
            if breached:
                self._events.log_breach(lifecycle.conversation_id, time_system.value, breached)

        return metrics

    async def _record_failure(self, conversation_id: str, exc: Exception) -> str:
        """Store a conversation without SLA fields and log why."""
        error = str(exc) or exc.__class__.__name__
        self._events.log_failure(conversation_id, error)
        await self._metrics_repo.mark_unavailable(conversation_id, error, datetime.now(timezone.utc))
        return error

    async def _process_isolated(
        self,
        lifecycle: ConversationLifecycle,
        configuration: SLAConfiguration,
        trigger: RecalculationTrigger,
        result: RecalculationResult
    ) -> None:
        """Process one conversation; a failure is recorded instead of raised."""
        try:
            await self._process(lifecycle, configuration, trigger)
            result.processed += 1
        except Exception as e:
            error = await self._record_failure(lifecycle.conversation_id, e)
            result.failed += 1
            if len(result.errors) < MAX_REPORTED_ERRORS:
                result.errors.append(f"{lifecycle.conversation_id}: {error}")


class SLAReportingService:
    """
    Service for SLA dashboards: aggregate metrics, breaches and
    single-conversation views.
    """

    def __init__(
        self,
        metrics_repository: ISLAMetricsRepository,
        config_provider: ISLAConfigProvider
    ):
        self._metrics_repo = metrics_repository
        self._config_provider = config_provider

    async def get_metrics(
        self,
        conversation_filter: ConversationFilter,
        include_trend: bool = False
    ) -> MetricsResponse:
        """
        Aggregate SLA metrics over the filtered conversations.

        Args:
            conversation_filter: Date range, agents and channel
            include_trend: Also report the preceding equal-length period

        Returns:
            MetricsResponse for both time systems
        """
        configuration = self._config_provider.get_configuration()
        records = await self._metrics_repo.fetch_records(conversation_filter)
        report = AggregateMetricsReporter.summarize(records, configuration.targets)

        trend = None
        if include_trend:
            previous_filter = conversation_filter.previous_period()
            previous_records = await self._metrics_repo.fetch_records(previous_filter)
            comparison = AggregateMetricsReporter.trend(previous_records)
            trend = TrendResponse(
                previous_start_date=previous_filter.start_date,
                previous_end_date=previous_filter.end_date,
                **comparison.to_dict()
            )

        return MetricsResponse(
            date_range=DateRangeResponse(
                start_date=conversation_filter.start_date,
                end_date=conversation_filter.end_date,
            ),
            total_conversations=report.total_conversations,
            unavailable_conversations=report.unavailable_conversations,
            wall_clock=TimeSystemSummaryResponse(**report.wall_clock.to_dict()),
            business_hours=TimeSystemSummaryResponse(**report.business_hours.to_dict()),
            targets=configuration.targets.to_dict(),
            enabled_metrics=configuration.enabled_metrics.to_dict(),
            trend=trend,
        )

    async def list_breaches(self, query: BreachQuery) -> BreachListResponse:
        """Paginated conversations whose overall verdict is breached."""
        records, total = await self._metrics_repo.list_breaches(query)

        breaches = [
            BreachResponse(
                conversation_id=record.conversation_id,
                opened_at=record.opened_at,
                closed_at=record.closed_at,
                agent_id=record.agent_id,
                channel=record.channel,
                wall_clock=_time_system_response(record.metrics.wall_clock),
                business_hours=_time_system_response(record.metrics.business_hours),
                breach_types=ComplianceAggregator.breach_types(record.metrics, TimeSystem.WALL_CLOCK),
                breach_types_bh=ComplianceAggregator.breach_types(
                    record.metrics, TimeSystem.BUSINESS_HOURS
                ),
            )
            for record in records
            if record.metrics is not None
        ]

        total_pages = math.ceil(total / query.page_size) if total else 0
        return BreachListResponse(
            breaches=breaches,
            pagination=PaginationResponse(
                page=query.page,
                page_size=query.page_size,
                total=total,
                total_pages=total_pages,
                has_next=query.page < total_pages,
                has_previous=query.page > 1,
            ),
        )

    async def get_conversation(self, conversation_id: str) -> ConversationSLAResponse:
        """
        Stored SLA state of one conversation.

        Raises:
            ResourceNotFoundException: If no record exists
        """
        record = await self._metrics_repo.get_record(conversation_id)
        if record is None:
            raise ResourceNotFoundException("SLA metrics", conversation_id)
        return record_to_response(record)

    def get_configuration(self) -> ConfigResponse:
        """Current office hours, targets and enabled metrics."""
        return ConfigResponse(**self._config_provider.get_configuration().to_dict())
