"""
SLA Metric Calculators
=======================

Computes the four per-conversation SLA metrics:

- Pickup: chat opened -> first agent assigned
- First response: chat opened -> first agent message
- Average response: mean of customer -> agent reply gaps
- Resolution: chat opened -> chat closed

One calculator implementation serves both time systems; the way elapsed
time is measured between two instants is injected as a DurationStrategy.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional

from chat_sla.config import MessageRole, SLAMetricName, SLA_METRICS
from chat_sla.core import MetricComputationException
from chat_sla.sla.domain.compliance import ComplianceAggregator
from chat_sla.sla.domain.entities import (
    ChatMessage,
    ConversationLifecycle,
    SLAMetrics,
    TimeSystemMetrics,
)
from chat_sla.sla.domain.office_hours import calculate_business_hours_between, to_utc
from chat_sla.sla.domain.value_objects import OfficeHoursConfig, SLAConfiguration

_ONE_SECOND = timedelta(seconds=1)


class DurationStrategy(ABC):
    """Measures elapsed seconds between two instants."""

    @abstractmethod
    def between(self, start: datetime, end: datetime) -> int:
        """Whole seconds from start to end."""


class WallClockDuration(DurationStrategy):
    """Plain elapsed time, floored to whole seconds."""

    def between(self, start: datetime, end: datetime) -> int:
        return (to_utc(end) - to_utc(start)) // _ONE_SECOND


class BusinessHoursDuration(DurationStrategy):
    """Elapsed time counted only inside office hours."""

    def __init__(self, config: OfficeHoursConfig):
        self.config = config

    def between(self, start: datetime, end: datetime) -> int:
        return calculate_business_hours_between(start, end, self.config)


class MetricCalculator:
    """
    Per-conversation metric calculator parameterised by a duration strategy.

    Each method returns None when the metric is unknown (the event it
    measures has not happened yet).
    """

    def __init__(self, duration: DurationStrategy):
        self.duration = duration

    def pickup_time(
        self,
        opened_at: datetime,
        first_agent_assigned_at: Optional[datetime]
    ) -> Optional[int]:
        if first_agent_assigned_at is None:
            return None
        return self.duration.between(opened_at, first_agent_assigned_at)

    def first_response_time(
        self,
        opened_at: datetime,
        messages: List[ChatMessage]
    ) -> Optional[int]:
        for message in messages:
            if message.role == MessageRole.AGENT:
                return self.duration.between(opened_at, message.at)
        return None

    def avg_response_time(self, messages: List[ChatMessage]) -> Optional[float]:
        """
        Mean gap between a customer message and the agent reply to it.

        A customer message becomes the pending one, replacing any earlier
        unanswered customer message. An agent message answers the pending
        message (one sample) and clears it. System messages are ignored.
        """
        samples = []
        pending_customer: Optional[ChatMessage] = None

        for message in messages:
            if message.role == MessageRole.CUSTOMER:
                pending_customer = message
            elif message.role == MessageRole.AGENT and pending_customer is not None:
                samples.append(self.duration.between(pending_customer.at, message.at))
                pending_customer = None

        if not samples:
            return None
        return sum(samples) / len(samples)

    def resolution_time(
        self,
        opened_at: datetime,
        closed_at: Optional[datetime]
    ) -> Optional[int]:
        if closed_at is None:
            return None
        return self.duration.between(opened_at, closed_at)

    def calculate(
        self,
        lifecycle: ConversationLifecycle,
        configuration: SLAConfiguration
    ) -> TimeSystemMetrics:
        """Compute all four durations, their flags and the overall verdict."""
        if lifecycle.data_error:
            raise MetricComputationException(lifecycle.conversation_id, lifecycle.data_error)
        if lifecycle.opened_at is None:
            raise MetricComputationException(lifecycle.conversation_id, "opened_at is missing")

        messages = list(lifecycle.messages)
        durations = {
            SLAMetricName.PICKUP: self.pickup_time(
                lifecycle.opened_at, lifecycle.first_agent_assigned_at
            ),
            SLAMetricName.FIRST_RESPONSE: self.first_response_time(lifecycle.opened_at, messages),
            SLAMetricName.AVG_RESPONSE: self.avg_response_time(messages),
            SLAMetricName.RESOLUTION: self.resolution_time(lifecycle.opened_at, lifecycle.closed_at),
        }

        flags = {
            metric: ComplianceAggregator.calculate_sla_compliance(
                durations[metric], configuration.targets.target_for(metric)
            )
            for metric in SLA_METRICS
        }

        return TimeSystemMetrics(
            pickup_time=durations[SLAMetricName.PICKUP],
            first_response_time=durations[SLAMetricName.FIRST_RESPONSE],
            avg_response_time=durations[SLAMetricName.AVG_RESPONSE],
            resolution_time=durations[SLAMetricName.RESOLUTION],
            pickup_sla=flags[SLAMetricName.PICKUP],
            first_response_sla=flags[SLAMetricName.FIRST_RESPONSE],
            avg_response_sla=flags[SLAMetricName.AVG_RESPONSE],
            resolution_sla=flags[SLAMetricName.RESOLUTION],
            overall_sla=ComplianceAggregator.fold_overall_compliance(
                flags, configuration.enabled_metrics
            ),
        )


def _calculator_for(config: Optional[OfficeHoursConfig]) -> MetricCalculator:
    if config is None:
        return MetricCalculator(WallClockDuration())
    return MetricCalculator(BusinessHoursDuration(config))


def calculate_pickup_time(
    opened_at: datetime,
    first_agent_assigned_at: Optional[datetime],
    office_hours: Optional[OfficeHoursConfig] = None
) -> Optional[int]:
    """Pickup time in seconds; business hours when office_hours is given."""
    return _calculator_for(office_hours).pickup_time(opened_at, first_agent_assigned_at)


def calculate_first_response_time(
    opened_at: datetime,
    messages: List[ChatMessage],
    office_hours: Optional[OfficeHoursConfig] = None
) -> Optional[int]:
    """First response time in seconds; business hours when office_hours is given."""
    return _calculator_for(office_hours).first_response_time(opened_at, list(messages))


def calculate_avg_response_time(
    messages: List[ChatMessage],
    office_hours: Optional[OfficeHoursConfig] = None
) -> Optional[float]:
    """Average response time in seconds; business hours when office_hours is given."""
    return _calculator_for(office_hours).avg_response_time(list(messages))


def calculate_resolution_time(
    opened_at: datetime,
    closed_at: Optional[datetime],
    office_hours: Optional[OfficeHoursConfig] = None
) -> Optional[int]:
    """Resolution time in seconds; business hours when office_hours is given."""
    return _calculator_for(office_hours).resolution_time(opened_at, closed_at)


def calculate_sla_metrics(
    lifecycle: ConversationLifecycle,
    configuration: SLAConfiguration
) -> SLAMetrics:
    """
    Calculate SLA metrics in both time systems.

    Both calculators see the same lifecycle and configuration snapshot.

    Raises:
        MetricComputationException: If the lifecycle has no opened_at or
            its stored rows could not be read
    """
    wall_clock = MetricCalculator(WallClockDuration()).calculate(lifecycle, configuration)
    business_hours = MetricCalculator(
        BusinessHoursDuration(configuration.office_hours)
    ).calculate(lifecycle, configuration)

    return SLAMetrics(wall_clock=wall_clock, business_hours=business_hours)
