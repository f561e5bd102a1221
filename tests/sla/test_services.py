"""Tests for the SLA application services."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from chat_sla.config import RecalculationTrigger
from chat_sla.core import ResourceNotFoundException, ValidationException
from chat_sla.sla.application import (
    BreachQuery,
    ConversationFilter,
    RecalculationQuery,
    SLAMetricsService,
    SLAReportingService,
)
from chat_sla.sla.application.services import MAX_REPORTED_ERRORS, UNAVAILABLE_MESSAGE
from chat_sla.sla.domain import Compliance, ConversationLifecycle
from chat_sla.sla.domain.entities import lifecycle_from_messages


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


NOW = utc(2025, 2, 1, 12, 0)

# Tuesday 2025-01-07 10:00 New York
OPENED = utc(2025, 1, 7, 15, 0)


def chat(conversation_id: str, pickup_seconds: int = 60, opened_at: datetime = OPENED, **extra):
    """A conversation picked up and answered after `pickup_seconds`."""
    answered = opened_at + timedelta(seconds=pickup_seconds)
    return lifecycle_from_messages(
        conversation_id,
        opened_at,
        [("customer", opened_at), ("agent", answered)],
        first_agent_assigned_at=answered,
        **extra,
    )


@pytest.fixture
def event_logger() -> MagicMock:
    return MagicMock()


@pytest.fixture
def metrics_service(conversation_repository, metrics_repository, config_provider, event_logger):
    return SLAMetricsService(conversation_repository, metrics_repository, config_provider, event_logger)


@pytest.fixture
def reporting_service(metrics_repository, config_provider):
    return SLAReportingService(metrics_repository, config_provider)


class TestResolveDateRange:
    """Defaults and validation of recalculation ranges."""

    def test_defaults_to_lookback_window(self, metrics_service) -> None:
        start, end = metrics_service.resolve_date_range(None, None, NOW)

        assert end == NOW
        assert start == NOW - timedelta(days=30)

    def test_inverted_range_rejected(self, metrics_service) -> None:
        with pytest.raises(ValidationException):
            metrics_service.resolve_date_range(utc(2025, 1, 10), utc(2025, 1, 1), NOW)

    def test_equal_bounds_rejected(self, metrics_service) -> None:
        with pytest.raises(ValidationException):
            metrics_service.resolve_date_range(utc(2025, 1, 10), utc(2025, 1, 10), NOW)

    def test_range_over_a_year_rejected(self, metrics_service) -> None:
        with pytest.raises(ValidationException) as exc_info:
            metrics_service.resolve_date_range(utc(2023, 12, 1), utc(2025, 1, 1), NOW)
        assert "365" in exc_info.value.message

    def test_exactly_a_year_accepted(self, metrics_service) -> None:
        end = utc(2025, 1, 1)
        start, _ = metrics_service.resolve_date_range(end - timedelta(days=365), end, NOW)
        assert start == end - timedelta(days=365)

    def test_future_end_rejected(self, metrics_service) -> None:
        with pytest.raises(ValidationException):
            metrics_service.resolve_date_range(utc(2025, 1, 1), NOW + timedelta(days=1), NOW)

    def test_naive_dates_taken_as_utc(self, metrics_service) -> None:
        start, end = metrics_service.resolve_date_range(datetime(2025, 1, 1), datetime(2025, 1, 2), NOW)
        assert start == utc(2025, 1, 1)
        assert end == utc(2025, 1, 2)


class TestRecalculate:
    """Batch recalculation with per-conversation failure isolation."""

    @pytest.mark.asyncio
    async def test_processes_every_conversation(
        self, metrics_service, conversation_repository, metrics_repository
    ) -> None:
        for index in range(5):
            conversation_repository.add(chat(f"chat-{index}"))

        result = await metrics_service.recalculate(
            RecalculationQuery(start_date=utc(2025, 1, 1), end_date=utc(2025, 1, 31), batch_size=2),
            now=NOW,
        )

        assert result.success
        assert result.total == 5
        assert result.processed == 5
        assert result.failed == 0
        assert result.batches == 3
        assert set(metrics_repository.stored) == {f"chat-{index}" for index in range(5)}

    @pytest.mark.asyncio
    async def test_cursor_pagination(self, metrics_service, conversation_repository) -> None:
        for conversation_id in ("chat-a", "chat-b", "chat-c", "chat-d"):
            conversation_repository.add(chat(conversation_id))

        result = await metrics_service.recalculate(
            RecalculationQuery(start_date=utc(2025, 1, 1), end_date=utc(2025, 1, 31), batch_size=2),
            now=NOW,
        )

        # Full pages never end the run; the empty third page does.
        assert conversation_repository.pages_requested == [None, "chat-b", "chat-d"]
        assert result.batches == 2

    @pytest.mark.asyncio
    async def test_out_of_range_conversations_skipped(
        self, metrics_service, conversation_repository, metrics_repository
    ) -> None:
        conversation_repository.add(chat("chat-in"))
        conversation_repository.add(chat("chat-out", opened_at=utc(2024, 6, 1, 15, 0)))

        result = await metrics_service.recalculate(
            RecalculationQuery(start_date=utc(2025, 1, 1), end_date=utc(2025, 1, 31)), now=NOW
        )

        assert result.total == 1
        assert set(metrics_repository.stored) == {"chat-in"}

    @pytest.mark.asyncio
    async def test_failure_is_isolated(
        self, metrics_service, conversation_repository, metrics_repository, event_logger
    ) -> None:
        conversation_repository.add(chat("chat-1"))
        conversation_repository.add(ConversationLifecycle(conversation_id="chat-2", opened_at=None))
        conversation_repository.add(chat("chat-3"))

        result = await metrics_service.recalculate(
            RecalculationQuery(start_date=utc(2025, 1, 1), end_date=utc(2025, 1, 31)), now=NOW
        )

        assert not result.success
        assert result.processed == 2
        assert result.failed == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("chat-2: ")

        metrics, _, error = metrics_repository.stored["chat-2"]
        assert metrics is None
        assert "opened_at" in error
        assert metrics_repository.stored["chat-3"][0] is not None
        event_logger.log_failure.assert_called_once()

    @pytest.mark.asyncio
    async def test_unreadable_lifecycle_is_isolated(
        self, metrics_service, conversation_repository, metrics_repository
    ) -> None:
        conversation_repository.add(chat("chat-1"))
        conversation_repository.add(ConversationLifecycle(
            conversation_id="chat-2", opened_at=OPENED, data_error="'bot' is not a valid MessageRole"
        ))

        result = await metrics_service.recalculate(
            RecalculationQuery(start_date=utc(2025, 1, 1), end_date=utc(2025, 1, 31)), now=NOW
        )

        assert result.processed == 1
        assert result.failed == 1
        metrics, _, error = metrics_repository.stored["chat-2"]
        assert metrics is None
        assert "'bot'" in error

    @pytest.mark.asyncio
    async def test_reported_errors_capped(self, metrics_service, conversation_repository) -> None:
        for index in range(MAX_REPORTED_ERRORS + 5):
            conversation_repository.add(
                ConversationLifecycle(conversation_id=f"broken-{index:02d}", opened_at=None)
            )

        result = await metrics_service.recalculate(
            RecalculationQuery(start_date=utc(2025, 1, 1), end_date=utc(2025, 1, 31)), now=NOW
        )

        assert result.failed == MAX_REPORTED_ERRORS + 5
        assert len(result.errors) == MAX_REPORTED_ERRORS

    @pytest.mark.asyncio
    async def test_invalid_range_raises_before_any_write(
        self, metrics_service, conversation_repository, metrics_repository
    ) -> None:
        conversation_repository.add(chat("chat-1"))

        with pytest.raises(ValidationException):
            await metrics_service.recalculate(
                RecalculationQuery(start_date=utc(2025, 1, 31), end_date=utc(2025, 1, 1)), now=NOW
            )
        assert metrics_repository.stored == {}

    @pytest.mark.asyncio
    async def test_single_conversation(self, metrics_service, conversation_repository, metrics_repository) -> None:
        conversation_repository.add(chat("chat-1"))
        conversation_repository.add(chat("chat-2"))

        result = await metrics_service.recalculate(RecalculationQuery(conversation_id="chat-2"), now=NOW)

        assert result.total == 1
        assert result.processed == 1
        assert set(metrics_repository.stored) == {"chat-2"}

    @pytest.mark.asyncio
    async def test_enabled_metrics_reported(self, metrics_service, conversation_repository) -> None:
        conversation_repository.add(chat("chat-1"))

        result = await metrics_service.recalculate(RecalculationQuery(conversation_id="chat-1"), now=NOW)

        assert result.to_response().enabled_metrics == {
            "pickup": True,
            "first_response": True,
            "avg_response": False,
            "resolution": False,
        }

    @pytest.mark.asyncio
    async def test_breaches_logged(self, metrics_service, conversation_repository, event_logger) -> None:
        conversation_repository.add(chat("chat-slow", pickup_seconds=600))

        await metrics_service.recalculate(RecalculationQuery(conversation_id="chat-slow"), now=NOW)

        logged_time_systems = [call.args[1] for call in event_logger.log_breach.call_args_list]
        assert logged_time_systems == ["wall_clock", "business_hours"]
        assert event_logger.log_breach.call_args_list[0].args[2] == ["pickup", "first_response", "avg_response"]


class TestRecalculateConversation:
    """Single-conversation recalculation."""

    @pytest.mark.asyncio
    async def test_overwrites_previous_result(
        self, metrics_service, conversation_repository, metrics_repository
    ) -> None:
        conversation_repository.add(chat("chat-1"))
        metrics_repository.store("chat-1", None, error="stale failure")

        metrics = await metrics_service.recalculate_conversation("chat-1", RecalculationTrigger.UPDATE)

        stored_metrics, _, error = metrics_repository.stored["chat-1"]
        assert stored_metrics == metrics
        assert error is None
        assert metrics.wall_clock.overall_sla is Compliance.COMPLIANT

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, metrics_service) -> None:
        with pytest.raises(ResourceNotFoundException):
            await metrics_service.recalculate_conversation("missing")

    @pytest.mark.asyncio
    async def test_corrupted_lifecycle_replaces_previous_result(
        self, metrics_service, conversation_repository, metrics_repository, event_logger
    ) -> None:
        conversation_repository.add(chat("chat-1"))
        assert await metrics_service.recalculate_conversation("chat-1") is not None

        conversation_repository.add(ConversationLifecycle(conversation_id="chat-1", opened_at=None))
        result = await metrics_service.recalculate_conversation("chat-1")

        assert result is None
        record = await metrics_repository.get_record("chat-1")
        assert record.sla_available is False
        assert record.metrics is None
        assert "opened_at" in record.error
        event_logger.log_failure.assert_called_once()


class TestReportingService:
    """Aggregate metrics, breaches and single-conversation views."""

    @pytest.fixture
    def january(self) -> ConversationFilter:
        return ConversationFilter(start_date=utc(2025, 1, 1), end_date=utc(2025, 2, 1))

    @pytest_asyncio.fixture
    async def populated(self, metrics_service, conversation_repository, metrics_repository):
        conversation_repository.add(chat("chat-fast", agent_id="agent-1", channel="whatsapp"))
        conversation_repository.add(chat("chat-slow", pickup_seconds=600, agent_id="agent-2",
                                         opened_at=OPENED + timedelta(hours=1)))
        conversation_repository.add(chat("chat-dec", opened_at=utc(2024, 12, 10, 15, 0)))
        conversation_repository.add(ConversationLifecycle(conversation_id="chat-broken", opened_at=OPENED))
        for conversation_id in ("chat-fast", "chat-slow", "chat-dec"):
            await metrics_service.recalculate_conversation(conversation_id)
        metrics_repository.store("chat-broken", None, error="corrupted lifecycle")

    @pytest.mark.asyncio
    async def test_get_metrics(self, reporting_service, populated, january) -> None:
        response = await reporting_service.get_metrics(january)

        assert response.total_conversations == 3
        assert response.unavailable_conversations == 1
        assert response.wall_clock.overall_compliance.compliant == 1
        assert response.wall_clock.overall_compliance.breached == 1
        assert response.wall_clock.overall_compliance.rate == 50.0
        assert response.wall_clock.meets_target is False
        assert response.targets["pickup_target"] == 120
        assert response.trend is None

    @pytest.mark.asyncio
    async def test_get_metrics_with_trend(self, reporting_service, populated, january) -> None:
        response = await reporting_service.get_metrics(january, include_trend=True)

        assert response.trend.previous_start_date == utc(2024, 12, 1)
        assert response.trend.previous_end_date == utc(2025, 1, 1)
        assert response.trend.previous_total_conversations == 1
        assert response.trend.previous_wall_clock_compliance.rate == 100.0

    @pytest.mark.asyncio
    async def test_trend_excludes_conversation_at_period_start(
        self, reporting_service, metrics_service, conversation_repository, populated, january
    ) -> None:
        conversation_repository.add(chat("chat-midnight", opened_at=january.start_date))
        await metrics_service.recalculate_conversation("chat-midnight")

        response = await reporting_service.get_metrics(january, include_trend=True)

        assert response.total_conversations == 4
        assert response.trend.previous_total_conversations == 1

    @pytest.mark.asyncio
    async def test_get_metrics_filters_by_agent(self, reporting_service, populated) -> None:
        response = await reporting_service.get_metrics(
            ConversationFilter(start_date=utc(2025, 1, 1), end_date=utc(2025, 2, 1), agent_ids=["agent-2"])
        )

        assert response.total_conversations == 1
        assert response.wall_clock.overall_compliance.breached == 1

    @pytest.mark.asyncio
    async def test_list_breaches(self, reporting_service, populated, january) -> None:
        response = await reporting_service.list_breaches(BreachQuery(filter=january))

        assert [breach.conversation_id for breach in response.breaches] == ["chat-slow"]
        assert response.breaches[0].breach_types == ["pickup", "first_response", "avg_response"]
        assert response.breaches[0].wall_clock.pickup_time == 600
        assert response.pagination.total == 1
        assert response.pagination.total_pages == 1
        assert response.pagination.has_next is False

    @pytest.mark.asyncio
    async def test_list_breaches_by_type(self, reporting_service, populated, january) -> None:
        response = await reporting_service.list_breaches(
            BreachQuery(filter=january, breach_type="resolution")
        )

        assert response.breaches == []
        assert response.pagination.total_pages == 0

    @pytest.mark.asyncio
    async def test_get_conversation(self, reporting_service, populated) -> None:
        response = await reporting_service.get_conversation("chat-fast")

        assert response.sla_available is True
        assert response.wall_clock.pickup_time == 60
        assert response.wall_clock.overall_sla == "compliant"
        assert response.business_hours.first_response_sla == "compliant"

    @pytest.mark.asyncio
    async def test_unavailable_conversation(self, reporting_service, populated) -> None:
        response = await reporting_service.get_conversation("chat-broken")

        assert response.sla_available is False
        assert response.message == UNAVAILABLE_MESSAGE
        assert response.wall_clock is None

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, reporting_service) -> None:
        with pytest.raises(ResourceNotFoundException):
            await reporting_service.get_conversation("missing")

    def test_get_configuration(self, reporting_service) -> None:
        response = reporting_service.get_configuration()

        assert response.office_hours["timezone"] == "America/New_York"
        assert response.targets["first_response_target"] == 300
        assert response.enabled_metrics["avg_response"] is False
