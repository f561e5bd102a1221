"""
SLA Domain Layer
================

Domain layer for SLA analytics.

Contains:
- Value Objects: Office hours, targets, enabled metrics (OfficeHoursConfig, SLATargets)
- Entities: Conversation lifecycle input and metric output (ConversationLifecycle, SLAMetrics)
- Domain Services: Stateless business logic (MetricCalculator, ComplianceAggregator,
  AggregateMetricsReporter)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from chat_sla.sla.domain.value_objects import (
    OfficeHoursConfig,
    SLATargets,
    EnabledMetrics,
    SLAConfiguration,
    SLAConfigDocument,
    configuration_from_settings,
)
from chat_sla.sla.domain.entities import (
    Compliance,
    ChatMessage,
    ConversationLifecycle,
    TimeSystemMetrics,
    SLAMetrics,
    SLAMetricsRecord,
    metric_column_names,
)
from chat_sla.sla.domain.office_hours import (
    is_within_office_hours,
    get_next_business_hour_start,
    calculate_business_hours_between,
)
from chat_sla.sla.domain.compliance import (
    ComplianceAggregator,
    calculate_sla_compliance,
    fold_overall_compliance,
    breach_types,
)
from chat_sla.sla.domain.calculators import (
    DurationStrategy,
    WallClockDuration,
    BusinessHoursDuration,
    MetricCalculator,
    calculate_pickup_time,
    calculate_first_response_time,
    calculate_avg_response_time,
    calculate_resolution_time,
    calculate_sla_metrics,
)
from chat_sla.sla.domain.reporting import (
    ComplianceRate,
    PercentileSummary,
    TimeSystemSummary,
    AggregateReport,
    TrendComparison,
    AggregateMetricsReporter,
    percentile,
    compliance_rate,
)

__all__ = [
    # Value Objects
    "OfficeHoursConfig",
    "SLATargets",
    "EnabledMetrics",
    "SLAConfiguration",
    "SLAConfigDocument",
    "configuration_from_settings",
    # Entities
    "Compliance",
    "ChatMessage",
    "ConversationLifecycle",
    "TimeSystemMetrics",
    "SLAMetrics",
    "SLAMetricsRecord",
    "metric_column_names",
    # Office hours
    "is_within_office_hours",
    "get_next_business_hour_start",
    "calculate_business_hours_between",
    # Compliance
    "ComplianceAggregator",
    "calculate_sla_compliance",
    "fold_overall_compliance",
    "breach_types",
    # Calculators
    "DurationStrategy",
    "WallClockDuration",
    "BusinessHoursDuration",
    "MetricCalculator",
    "calculate_pickup_time",
    "calculate_first_response_time",
    "calculate_avg_response_time",
    "calculate_resolution_time",
    "calculate_sla_metrics",
    # Reporting
    "ComplianceRate",
    "PercentileSummary",
    "TimeSystemSummary",
    "AggregateReport",
    "TrendComparison",
    "AggregateMetricsReporter",
    "percentile",
    "compliance_rate",
]
