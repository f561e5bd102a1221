"""Shared pytest fixtures for chat SLA tests."""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from chat_sla.config import SLAMetricName, TimeSystem
from chat_sla.sla.application import (
    BreachQuery,
    ConversationFilter,
    IConversationRepository,
    ISLAConfigProvider,
    ISLAMetricsRepository,
)
from chat_sla.sla.domain import (
    Compliance,
    ConversationLifecycle,
    EnabledMetrics,
    OfficeHoursConfig,
    SLAConfiguration,
    SLAMetrics,
    SLAMetricsRecord,
    SLATargets,
    TimeSystemMetrics,
)
from chat_sla.sla.domain.office_hours import to_utc


class InMemoryConversationRepository(IConversationRepository):
    """Conversation store backed by a dict."""

    def __init__(self, lifecycles=()):
        self.lifecycles: Dict[str, ConversationLifecycle] = {
            lifecycle.conversation_id: lifecycle for lifecycle in lifecycles
        }
        self.pages_requested: List[Optional[str]] = []

    def add(self, lifecycle: ConversationLifecycle) -> None:
        self.lifecycles[lifecycle.conversation_id] = lifecycle

    def _in_range(self, start_date, end_date, include_end=True) -> List[ConversationLifecycle]:
        def contains(opened_at) -> bool:
            opened_at = to_utc(opened_at)
            return start_date <= opened_at and (opened_at <= end_date if include_end else opened_at < end_date)

        return sorted(
            (
                lifecycle for lifecycle in self.lifecycles.values()
                if lifecycle.opened_at is None or contains(lifecycle.opened_at)
            ),
            key=lambda lifecycle: lifecycle.conversation_id,
        )

    async def get_lifecycle(self, conversation_id: str) -> Optional[ConversationLifecycle]:
        return self.lifecycles.get(conversation_id)

    async def list_lifecycles(self, start_date, end_date, after_id=None, limit=500):
        self.pages_requested.append(after_id)
        matches = [
            lifecycle for lifecycle in self._in_range(start_date, end_date)
            if after_id is None or lifecycle.conversation_id > after_id
        ]
        return matches[:limit]

    async def count(self, start_date, end_date) -> int:
        return len(self._in_range(start_date, end_date))


class InMemorySLAMetricsRepository(ISLAMetricsRepository):
    """SLA record store backed by a dict, joined with conversation data."""

    def __init__(self, conversations: InMemoryConversationRepository):
        self.conversations = conversations
        self.stored: Dict[str, Tuple[Optional[SLAMetrics], datetime, Optional[str]]] = {}

    def store(self, conversation_id: str, metrics: Optional[SLAMetrics], error: Optional[str] = None):
        self.stored[conversation_id] = (metrics, datetime.now(timezone.utc), error)

    def _record(self, conversation_id: str) -> SLAMetricsRecord:
        lifecycle = self.conversations.lifecycles[conversation_id]
        metrics, calculated_at, error = self.stored.get(conversation_id, (None, None, None))
        return SLAMetricsRecord(
            conversation_id=conversation_id,
            opened_at=lifecycle.opened_at,
            closed_at=lifecycle.closed_at,
            agent_id=lifecycle.agent_id,
            channel=lifecycle.channel,
            metrics=metrics,
            calculated_at=calculated_at,
            error=error,
        )

    async def upsert_metrics(self, conversation_id, metrics, calculated_at) -> None:
        self.stored[conversation_id] = (metrics, calculated_at, None)

    async def mark_unavailable(self, conversation_id, error, calculated_at) -> None:
        self.stored[conversation_id] = (None, calculated_at, error)

    async def get_record(self, conversation_id: str) -> Optional[SLAMetricsRecord]:
        if conversation_id not in self.stored:
            return None
        return self._record(conversation_id)

    async def fetch_records(self, conversation_filter: ConversationFilter) -> List[SLAMetricsRecord]:
        records = []
        for lifecycle in self.conversations._in_range(
            conversation_filter.start_date, conversation_filter.end_date, conversation_filter.include_end
        ):
            if conversation_filter.agent_ids and lifecycle.agent_id not in conversation_filter.agent_ids:
                continue
            if conversation_filter.channel and lifecycle.channel != conversation_filter.channel:
                continue
            records.append(self._record(lifecycle.conversation_id))
        return records

    async def list_breaches(self, query: BreachQuery):
        time_system = TimeSystem(query.time_system)
        records = [
            record for record in await self.fetch_records(query.filter)
            if record.overall(time_system) is Compliance.BREACHED
        ]
        if query.breach_type:
            metric = SLAMetricName(query.breach_type)
            records = [
                record for record in records
                if record.compliance(time_system, metric) is Compliance.BREACHED
            ]
        records.sort(key=lambda record: record.opened_at, reverse=query.sort_order == "desc")
        return records[query.offset:query.offset + query.page_size], len(records)


class StaticConfigProvider(ISLAConfigProvider):
    """Returns a fixed configuration."""

    def __init__(self, configuration: SLAConfiguration):
        self.configuration = configuration

    def get_configuration(self) -> SLAConfiguration:
        return self.configuration


@pytest.fixture
def office_hours() -> OfficeHoursConfig:
    """Monday to Friday, 09:00-17:00 New York time."""
    return OfficeHoursConfig.from_strings(
        start="09:00",
        end="17:00",
        working_days=[1, 2, 3, 4, 5],
        timezone="America/New_York",
    )


@pytest.fixture
def sla_configuration(office_hours: OfficeHoursConfig) -> SLAConfiguration:
    """Default targets with pickup and first response enabled."""
    return SLAConfiguration(
        office_hours=office_hours,
        targets=SLATargets(
            pickup_target=120,
            first_response_target=300,
            avg_response_target=300,
            resolution_target=7200,
            compliance_target=95.0,
        ),
        enabled_metrics=EnabledMetrics(
            pickup=True, first_response=True, avg_response=False, resolution=False
        ),
    )


@pytest.fixture
def config_provider(sla_configuration: SLAConfiguration) -> StaticConfigProvider:
    return StaticConfigProvider(sla_configuration)


@pytest.fixture
def conversation_repository() -> InMemoryConversationRepository:
    return InMemoryConversationRepository()


@pytest.fixture
def metrics_repository(conversation_repository) -> InMemorySLAMetricsRepository:
    return InMemorySLAMetricsRepository(conversation_repository)


@pytest.fixture
def make_metrics():
    """
    Factory for SLAMetrics with identical values in both time systems.

    Flags default to UNKNOWN and durations to None.
    """
    def _make(
        overall: Compliance = Compliance.UNKNOWN,
        pickup_time: Optional[float] = None,
        first_response_time: Optional[float] = None,
        pickup_sla: Compliance = Compliance.UNKNOWN,
        first_response_sla: Compliance = Compliance.UNKNOWN,
        overall_bh: Optional[Compliance] = None,
    ) -> SLAMetrics:
        def system(overall_flag: Compliance) -> TimeSystemMetrics:
            return TimeSystemMetrics(
                pickup_time=pickup_time,
                first_response_time=first_response_time,
                avg_response_time=None,
                resolution_time=None,
                pickup_sla=pickup_sla,
                first_response_sla=first_response_sla,
                overall_sla=overall_flag,
            )

        return SLAMetrics(
            wall_clock=system(overall),
            business_hours=system(overall if overall_bh is None else overall_bh),
        )

    return _make
