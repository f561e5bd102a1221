"""Tests for per-conversation metric calculation in both time systems."""

from datetime import datetime, timedelta, timezone

import pytest

from chat_sla.config import MessageRole
from chat_sla.core import MetricComputationException
from chat_sla.sla.domain import (
    BusinessHoursDuration,
    ChatMessage,
    Compliance,
    ConversationLifecycle,
    MetricCalculator,
    SLAMetrics,
    WallClockDuration,
    calculate_avg_response_time,
    calculate_first_response_time,
    calculate_pickup_time,
    calculate_resolution_time,
    calculate_sla_metrics,
)
from chat_sla.sla.domain.entities import lifecycle_from_messages


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# Tuesday 2025-01-07 10:00 New York, inside office hours.
OPENED = utc(2025, 1, 7, 15, 0)


def at(seconds: float) -> datetime:
    return OPENED + timedelta(seconds=seconds)


@pytest.fixture
def answered_chat() -> ConversationLifecycle:
    """Picked up after 90s; two customer questions each answered in 60s."""
    return lifecycle_from_messages(
        "chat-001",
        OPENED,
        [
            ("customer", at(0)),
            ("agent", at(60)),
            ("customer", at(300)),
            ("system", at(330)),
            ("agent", at(360)),
        ],
        first_agent_assigned_at=at(90),
        closed_at=at(1800),
        agent_id="agent-7",
        channel="whatsapp",
    )


class TestMetricCalculator:
    """Individual metrics with a wall-clock duration."""

    @pytest.fixture
    def calculator(self) -> MetricCalculator:
        return MetricCalculator(WallClockDuration())

    def test_pickup_time(self, calculator) -> None:
        assert calculator.pickup_time(OPENED, at(90)) == 90

    def test_pickup_unknown_without_assignment(self, calculator) -> None:
        assert calculator.pickup_time(OPENED, None) is None

    def test_pickup_floors_fractional_seconds(self, calculator) -> None:
        assert calculator.pickup_time(OPENED, at(1.9)) == 1

    def test_first_response_uses_first_agent_message(self, calculator, answered_chat) -> None:
        assert calculator.first_response_time(OPENED, list(answered_chat.messages)) == 60

    def test_first_response_ignores_system_messages(self, calculator) -> None:
        messages = [
            ChatMessage(MessageRole.SYSTEM, at(5)),
            ChatMessage(MessageRole.CUSTOMER, at(10)),
            ChatMessage(MessageRole.AGENT, at(200)),
        ]
        assert calculator.first_response_time(OPENED, messages) == 200

    def test_first_response_unknown_without_agent_message(self, calculator) -> None:
        messages = [ChatMessage(MessageRole.CUSTOMER, at(10))]
        assert calculator.first_response_time(OPENED, messages) is None

    def test_avg_response_time(self, calculator, answered_chat) -> None:
        assert calculator.avg_response_time(list(answered_chat.messages)) == 60.0

    def test_avg_response_pairs_latest_customer_message(self, calculator) -> None:
        messages = [
            ChatMessage(MessageRole.CUSTOMER, at(0)),
            ChatMessage(MessageRole.CUSTOMER, at(120)),
            ChatMessage(MessageRole.AGENT, at(180)),
        ]
        assert calculator.avg_response_time(messages) == 60.0

    def test_avg_response_agent_reply_consumes_pending_message(self, calculator) -> None:
        messages = [
            ChatMessage(MessageRole.CUSTOMER, at(0)),
            ChatMessage(MessageRole.AGENT, at(30)),
            ChatMessage(MessageRole.AGENT, at(600)),
            ChatMessage(MessageRole.CUSTOMER, at(700)),
            ChatMessage(MessageRole.AGENT, at(790)),
        ]
        assert calculator.avg_response_time(messages) == 60.0

    def test_avg_response_is_a_float_mean(self, calculator) -> None:
        messages = [
            ChatMessage(MessageRole.CUSTOMER, at(0)),
            ChatMessage(MessageRole.AGENT, at(10)),
            ChatMessage(MessageRole.CUSTOMER, at(100)),
            ChatMessage(MessageRole.AGENT, at(125)),
        ]
        assert calculator.avg_response_time(messages) == 17.5

    def test_avg_response_unknown_without_pairs(self, calculator) -> None:
        messages = [
            ChatMessage(MessageRole.AGENT, at(10)),
            ChatMessage(MessageRole.CUSTOMER, at(20)),
        ]
        assert calculator.avg_response_time(messages) is None
        assert calculator.avg_response_time([]) is None

    def test_resolution_time(self, calculator) -> None:
        assert calculator.resolution_time(OPENED, at(1800)) == 1800

    def test_resolution_unknown_while_open(self, calculator) -> None:
        assert calculator.resolution_time(OPENED, None) is None


class TestCalculate:
    """Full calculation: durations, flags and the overall verdict."""

    def test_compliant_chat(self, answered_chat, sla_configuration) -> None:
        metrics = MetricCalculator(WallClockDuration()).calculate(answered_chat, sla_configuration)

        assert metrics.pickup_time == 90
        assert metrics.first_response_time == 60
        assert metrics.avg_response_time == 60.0
        assert metrics.resolution_time == 1800
        assert metrics.pickup_sla is Compliance.COMPLIANT
        assert metrics.first_response_sla is Compliance.COMPLIANT
        assert metrics.avg_response_sla is Compliance.COMPLIANT
        assert metrics.resolution_sla is Compliance.COMPLIANT
        assert metrics.overall_sla is Compliance.COMPLIANT

    def test_missing_opened_at_raises(self, sla_configuration) -> None:
        lifecycle = ConversationLifecycle(conversation_id="chat-broken", opened_at=None)

        with pytest.raises(MetricComputationException) as exc_info:
            MetricCalculator(WallClockDuration()).calculate(lifecycle, sla_configuration)
        assert exc_info.value.conversation_id == "chat-broken"

    def test_unreadable_lifecycle_raises(self, sla_configuration) -> None:
        lifecycle = ConversationLifecycle(
            conversation_id="chat-bot", opened_at=OPENED, data_error="'bot' is not a valid MessageRole"
        )

        with pytest.raises(MetricComputationException) as exc_info:
            MetricCalculator(WallClockDuration()).calculate(lifecycle, sla_configuration)
        assert exc_info.value.reason == "'bot' is not a valid MessageRole"

    def test_unpicked_chat_is_unknown_not_breached(self, sla_configuration) -> None:
        lifecycle = lifecycle_from_messages("chat-002", OPENED, [("customer", at(0))])

        metrics = MetricCalculator(WallClockDuration()).calculate(lifecycle, sla_configuration)

        assert metrics.pickup_time is None
        assert metrics.first_response_time is None
        assert metrics.pickup_sla is Compliance.UNKNOWN
        assert metrics.first_response_sla is Compliance.UNKNOWN
        assert metrics.overall_sla is Compliance.UNKNOWN

    def test_slow_pickup_breaches_overall(self, sla_configuration) -> None:
        lifecycle = lifecycle_from_messages(
            "chat-003", OPENED, [("customer", at(0)), ("agent", at(200))],
            first_agent_assigned_at=at(150),
        )

        metrics = MetricCalculator(WallClockDuration()).calculate(lifecycle, sla_configuration)

        assert metrics.pickup_sla is Compliance.BREACHED
        assert metrics.first_response_sla is Compliance.COMPLIANT
        assert metrics.overall_sla is Compliance.BREACHED


class TestCalculateSLAMetrics:
    """Both time systems from one lifecycle."""

    def test_inside_office_hours_systems_agree(self, answered_chat, sla_configuration) -> None:
        metrics = calculate_sla_metrics(answered_chat, sla_configuration)

        assert metrics.wall_clock == metrics.business_hours

    def test_weekend_wait_counts_only_in_wall_clock(self, sla_configuration) -> None:
        # Opened Friday 16:00 New York, picked up Monday 09:30 New York.
        opened = utc(2025, 1, 10, 21, 0)
        assigned = utc(2025, 1, 13, 14, 30)
        lifecycle = lifecycle_from_messages(
            "chat-004", opened,
            [("customer", opened), ("agent", assigned + timedelta(seconds=30))],
            first_agent_assigned_at=assigned,
        )

        metrics = calculate_sla_metrics(lifecycle, sla_configuration)

        assert metrics.wall_clock.pickup_time == 235800
        assert metrics.business_hours.pickup_time == 3600 + 1800
        assert metrics.wall_clock.pickup_sla is Compliance.BREACHED
        assert metrics.business_hours.pickup_sla is Compliance.BREACHED

    def test_after_hours_chat_complies_in_business_hours(self, sla_configuration) -> None:
        # Opened Tuesday 20:00 New York, answered Wednesday 09:01 New York.
        opened = utc(2025, 1, 8, 1, 0)
        answered = utc(2025, 1, 8, 14, 1)
        lifecycle = lifecycle_from_messages(
            "chat-005", opened,
            [("customer", opened), ("agent", answered)],
            first_agent_assigned_at=answered,
        )

        metrics = calculate_sla_metrics(lifecycle, sla_configuration)

        assert metrics.wall_clock.overall_sla is Compliance.BREACHED
        assert metrics.business_hours.pickup_time == 60
        assert metrics.business_hours.first_response_time == 60
        assert metrics.business_hours.overall_sla is Compliance.COMPLIANT

    def test_business_hours_never_exceed_wall_clock(self, answered_chat, sla_configuration) -> None:
        metrics = calculate_sla_metrics(answered_chat, sla_configuration)
        for field_name in ("pickup_time", "first_response_time", "avg_response_time", "resolution_time"):
            assert getattr(metrics.business_hours, field_name) <= getattr(metrics.wall_clock, field_name)

    def test_idempotent(self, answered_chat, sla_configuration) -> None:
        assert calculate_sla_metrics(answered_chat, sla_configuration) == calculate_sla_metrics(
            answered_chat, sla_configuration
        )

    def test_columns_round_trip_preserves_unknowns(self, sla_configuration) -> None:
        lifecycle = lifecycle_from_messages("chat-006", OPENED, [("customer", at(0))])
        metrics = calculate_sla_metrics(lifecycle, sla_configuration)

        columns = metrics.to_columns()

        assert columns["time_to_pickup"] is None
        assert columns["pickup_sla_bh"] is None
        assert columns["overall_sla"] is None
        assert len(columns) == 18
        assert SLAMetrics.from_columns(columns) == metrics


class TestModuleFunctions:
    """Convenience functions choose the time system from office_hours."""

    def test_wall_clock_without_office_hours(self) -> None:
        opened = utc(2025, 1, 10, 21, 0)
        assert calculate_pickup_time(opened, opened + timedelta(days=3)) == 3 * 86400

    def test_business_hours_with_office_hours(self, office_hours) -> None:
        opened = utc(2025, 1, 10, 21, 0)
        closed = utc(2025, 1, 13, 15, 0)
        assert calculate_resolution_time(opened, closed, office_hours) == 7200
        assert calculate_resolution_time(opened, None, office_hours) is None

    def test_first_and_average_response(self, answered_chat, office_hours) -> None:
        messages = answered_chat.messages
        assert calculate_first_response_time(OPENED, messages) == 60
        assert calculate_avg_response_time(messages, office_hours) == 60.0

    def test_business_hours_duration_strategy(self, office_hours) -> None:
        duration = BusinessHoursDuration(office_hours)
        assert duration.between(utc(2025, 1, 11, 12, 0), utc(2025, 1, 12, 12, 0)) == 0
