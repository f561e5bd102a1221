"""
SLA Domain Entities
====================

Pure Python domain entities for SLA analytics.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from chat_sla.config import MessageRole, SLAMetricName, TimeSystem, SLA_METRICS


class Compliance(str, Enum):
    """
    Three-valued compliance flag.

    UNKNOWN means the metric cannot be judged yet (missing timestamps);
    it is never a breach and never a success.
    """
    COMPLIANT = "compliant"
    BREACHED = "breached"
    UNKNOWN = "unknown"

    @classmethod
    def from_bool(cls, value: Optional[bool]) -> "Compliance":
        if value is None:
            return cls.UNKNOWN
        return cls.COMPLIANT if value else cls.BREACHED

    def to_bool(self) -> Optional[bool]:
        """Nullable boolean used by the persistence layer."""
        if self is Compliance.UNKNOWN:
            return None
        return self is Compliance.COMPLIANT

    @property
    def is_known(self) -> bool:
        return self is not Compliance.UNKNOWN


@dataclass(frozen=True)
class ChatMessage:
    """A single message of a conversation."""
    role: MessageRole
    at: datetime


@dataclass(frozen=True)
class ConversationLifecycle:
    """
    Read-only snapshot of a conversation's timestamps.

    Supplied by the ingestion layer. `first_agent_assigned_at` is None when
    the chat was never picked up, `closed_at` is None while still open.
    Messages are kept in the order given (chronological).
    `data_error` is set when the stored rows could not be read; such a
    lifecycle carries no messages and cannot be measured.
    """

    conversation_id: str
    opened_at: Optional[datetime]
    first_agent_assigned_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    messages: Tuple[ChatMessage, ...] = ()
    agent_id: Optional[str] = None
    channel: Optional[str] = None
    data_error: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "messages", tuple(self.messages))

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    @property
    def first_agent_message_at(self) -> Optional[datetime]:
        """Timestamp of the first agent-authored message, if any."""
        for message in self.messages:
            if message.role == MessageRole.AGENT:
                return message.at
        return None


@dataclass(frozen=True)
class TimeSystemMetrics:
    """
    SLA metrics for one time system (wall-clock or business hours).

    Durations are seconds, None when unknown.
    """

    pickup_time: Optional[float]
    first_response_time: Optional[float]
    avg_response_time: Optional[float]
    resolution_time: Optional[float]

    pickup_sla: Compliance = Compliance.UNKNOWN
    first_response_sla: Compliance = Compliance.UNKNOWN
    avg_response_sla: Compliance = Compliance.UNKNOWN
    resolution_sla: Compliance = Compliance.UNKNOWN
    overall_sla: Compliance = Compliance.UNKNOWN

    def duration(self, metric: SLAMetricName) -> Optional[float]:
        return {
            SLAMetricName.PICKUP: self.pickup_time,
            SLAMetricName.FIRST_RESPONSE: self.first_response_time,
            SLAMetricName.AVG_RESPONSE: self.avg_response_time,
            SLAMetricName.RESOLUTION: self.resolution_time,
        }[SLAMetricName(metric)]

    def compliance(self, metric: SLAMetricName) -> Compliance:
        return {
            SLAMetricName.PICKUP: self.pickup_sla,
            SLAMetricName.FIRST_RESPONSE: self.first_response_sla,
            SLAMetricName.AVG_RESPONSE: self.avg_response_sla,
            SLAMetricName.RESOLUTION: self.resolution_sla,
        }[SLAMetricName(metric)]

    def compliance_flags(self) -> Dict[SLAMetricName, Compliance]:
        return {metric: self.compliance(metric) for metric in SLA_METRICS}

    def to_dict(self) -> dict:
        return {
            "pickup_time": self.pickup_time,
            "first_response_time": self.first_response_time,
            "avg_response_time": self.avg_response_time,
            "resolution_time": self.resolution_time,
            "pickup_sla": self.pickup_sla.value,
            "first_response_sla": self.first_response_sla.value,
            "avg_response_sla": self.avg_response_sla.value,
            "resolution_sla": self.resolution_sla.value,
            "overall_sla": self.overall_sla.value,
        }


# Persistence column names per time system; business hours use the "_bh" suffix.
_DURATION_COLUMNS = {
    SLAMetricName.PICKUP: "time_to_pickup",
    SLAMetricName.FIRST_RESPONSE: "first_response_time",
    SLAMetricName.AVG_RESPONSE: "avg_response_time",
    SLAMetricName.RESOLUTION: "resolution_time",
}
_FLAG_COLUMNS = {
    SLAMetricName.PICKUP: "pickup_sla",
    SLAMetricName.FIRST_RESPONSE: "first_response_sla",
    SLAMetricName.AVG_RESPONSE: "avg_response_sla",
    SLAMetricName.RESOLUTION: "resolution_sla",
}
_COLUMN_SUFFIX = {TimeSystem.WALL_CLOCK: "", TimeSystem.BUSINESS_HOURS: "_bh"}


def metric_column_names() -> Tuple[str, ...]:
    """All eighteen persisted metric column names."""
    names = []
    for suffix in _COLUMN_SUFFIX.values():
        names.extend(f"{column}{suffix}" for column in _DURATION_COLUMNS.values())
        names.extend(f"{column}{suffix}" for column in _FLAG_COLUMNS.values())
        names.append(f"overall_sla{suffix}")
    return tuple(names)


@dataclass(frozen=True)
class SLAMetrics:
    """
    Complete SLA output for one conversation in both time systems.

    Created fresh for every calculation and never mutated.
    """

    wall_clock: TimeSystemMetrics
    business_hours: TimeSystemMetrics

    def for_system(self, time_system: TimeSystem) -> TimeSystemMetrics:
        if TimeSystem(time_system) is TimeSystem.BUSINESS_HOURS:
            return self.business_hours
        return self.wall_clock

    def to_columns(self) -> Dict[str, Any]:
        """Flatten to persistence columns (nullable numbers and booleans)."""
        columns: Dict[str, Any] = {}
        for time_system, suffix in _COLUMN_SUFFIX.items():
            metrics = self.for_system(time_system)
            for metric in SLA_METRICS:
                columns[f"{_DURATION_COLUMNS[metric]}{suffix}"] = metrics.duration(metric)
                columns[f"{_FLAG_COLUMNS[metric]}{suffix}"] = metrics.compliance(metric).to_bool()
            columns[f"overall_sla{suffix}"] = metrics.overall_sla.to_bool()
        return columns

    @classmethod
    def from_columns(cls, columns: Dict[str, Any]) -> "SLAMetrics":
        """Rebuild from persistence columns; missing columns read as unknown."""
        systems = {}
        for time_system, suffix in _COLUMN_SUFFIX.items():
            systems[time_system] = TimeSystemMetrics(
                pickup_time=columns.get(f"time_to_pickup{suffix}"),
                first_response_time=columns.get(f"first_response_time{suffix}"),
                avg_response_time=columns.get(f"avg_response_time{suffix}"),
                resolution_time=columns.get(f"resolution_time{suffix}"),
                pickup_sla=Compliance.from_bool(columns.get(f"pickup_sla{suffix}")),
                first_response_sla=Compliance.from_bool(columns.get(f"first_response_sla{suffix}")),
                avg_response_sla=Compliance.from_bool(columns.get(f"avg_response_sla{suffix}")),
                resolution_sla=Compliance.from_bool(columns.get(f"resolution_sla{suffix}")),
                overall_sla=Compliance.from_bool(columns.get(f"overall_sla{suffix}")),
            )
        return cls(
            wall_clock=systems[TimeSystem.WALL_CLOCK],
            business_hours=systems[TimeSystem.BUSINESS_HOURS],
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "wall_clock": self.wall_clock.to_dict(),
            "business_hours": self.business_hours.to_dict(),
        }


@dataclass
class SLAMetricsRecord:
    """
    A conversation's persisted SLA state as read back for reporting.

    `metrics` is None when the calculation failed or has not run yet;
    such records are shown as "SLA data unavailable", never as breaches.
    """

    conversation_id: str
    opened_at: Optional[datetime]
    closed_at: Optional[datetime] = None
    agent_id: Optional[str] = None
    channel: Optional[str] = None
    metrics: Optional[SLAMetrics] = None
    calculated_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def sla_available(self) -> bool:
        return self.metrics is not None

    def overall(self, time_system: TimeSystem) -> Compliance:
        if self.metrics is None:
            return Compliance.UNKNOWN
        return self.metrics.for_system(time_system).overall_sla

    def compliance(self, time_system: TimeSystem, metric: SLAMetricName) -> Compliance:
        if self.metrics is None:
            return Compliance.UNKNOWN
        return self.metrics.for_system(time_system).compliance(metric)

    def duration(self, time_system: TimeSystem, metric: SLAMetricName) -> Optional[float]:
        if self.metrics is None:
            return None
        return self.metrics.for_system(time_system).duration(metric)


def lifecycle_from_messages(
    conversation_id: str,
    opened_at: Optional[datetime],
    messages: Iterable[Tuple[str, datetime]],
    first_agent_assigned_at: Optional[datetime] = None,
    closed_at: Optional[datetime] = None,
    **extra: Any
) -> ConversationLifecycle:
    """Build a lifecycle from (role, timestamp) pairs."""
    return ConversationLifecycle(
        conversation_id=conversation_id,
        opened_at=opened_at,
        first_agent_assigned_at=first_agent_assigned_at,
        closed_at=closed_at,
        messages=tuple(ChatMessage(role=MessageRole(role), at=at) for role, at in messages),
        **extra,
    )
